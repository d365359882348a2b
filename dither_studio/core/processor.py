"""Frame processing pipeline.

Adjust → quantize → dither, for single images and sequence frames.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from dither_studio.core.adjust import Adjustments, apply_adjustments
from dither_studio.core.buffer import Frame, PixelBuffer
from dither_studio.core.dispatcher import apply
from dither_studio.core.settings import Settings


@dataclass
class ProcessedFrame:
    """Result of dithering a single frame."""

    buffer: PixelBuffer
    settings: Settings
    index: int
    time: float = 0.0

    @property
    def width(self) -> int:
        return self.buffer.shape[1]

    @property
    def height(self) -> int:
        return self.buffer.shape[0]


def process_frame(
    frame: Frame,
    settings: Settings,
    adjustments: Adjustments | None = None,
    rng: np.random.Generator | None = None,
) -> ProcessedFrame:
    """Process a single frame through the full CPU pipeline."""
    source = frame.buffer
    if adjustments is not None:
        source = apply_adjustments(source, adjustments)

    return ProcessedFrame(
        buffer=apply(source, settings, rng=rng),
        settings=settings,
        index=frame.index,
        time=frame.time,
    )
