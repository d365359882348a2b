"""Memo of dithered frames for repeated passes over the same sequence."""

from __future__ import annotations

from collections import OrderedDict
from typing import Optional, Tuple

import numpy as np

from dither_studio.core.adjust import Adjustments
from dither_studio.core.buffer import Frame
from dither_studio.core.processor import ProcessedFrame, process_frame
from dither_studio.core.settings import Settings

# Settings and Adjustments are frozen, so they key the memo directly.
FrameKey = Tuple[int, Settings, Optional[Adjustments]]


class FrameCache:
    """Least-recently-used memo of ProcessedFrames.

    A frame is only reused for the exact settings and adjustments it was
    dithered with, so interpolated settings between keyframes miss.
    """

    def __init__(self, max_size: int = 64) -> None:
        if max_size < 1:
            raise ValueError(f"max_size must be positive, got {max_size}")
        self.max_size = max_size
        self._frames: OrderedDict[FrameKey, ProcessedFrame] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._frames)

    def __contains__(self, key: FrameKey) -> bool:
        return key in self._frames

    def dither(
        self,
        frame: Frame,
        settings: Settings,
        adjustments: Adjustments | None = None,
        rng: np.random.Generator | None = None,
    ) -> ProcessedFrame:
        """Return the memoized result for ``frame``, dithering it on a miss."""
        key = (frame.index, settings, adjustments)
        found = self._frames.get(key)
        if found is not None:
            self._frames.move_to_end(key)
            self.hits += 1
            return found

        self.misses += 1
        processed = process_frame(frame, settings, adjustments, rng=rng)
        self._frames[key] = processed
        while len(self._frames) > self.max_size:
            self._frames.popitem(last=False)
        return processed

    def clear(self) -> None:
        self._frames.clear()
        self.hits = self.misses = 0
