"""Per-frame driving of the GPU pipeline and the CPU sequence path.

For every tick the keyframe track is sampled at the frame's time, the
resulting settings are pushed to the pipeline, the frame is uploaded and
exactly one render is issued.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, Iterator

import numpy as np

from dither_studio.core.adjust import Adjustments
from dither_studio.core.buffer import Frame
from dither_studio.core.keyframes import KeyframeTrack, effective_settings
from dither_studio.core.processor import ProcessedFrame, process_frame
from dither_studio.core.settings import Settings
from dither_studio.gpu.pipeline import DitherPipeline
from dither_studio.utils.cache import FrameCache

logger = logging.getLogger(__name__)


class PlaybackController:
    """Feeds frames through a pipeline under keyframed settings."""

    def __init__(
        self,
        pipeline: DitherPipeline,
        track: KeyframeTrack | None = None,
        base_settings: Settings | None = None,
        temporal_dithering: bool = True,
        split_position: float = 0.5,
        show_split: bool = True,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.pipeline = pipeline
        self.track = track if track is not None else KeyframeTrack()
        self.base_settings = base_settings or Settings()
        self.temporal_dithering = temporal_dithering
        self.split_position = split_position
        self.show_split = show_split
        self._clock = clock
        self._playing = False
        self._fps = 0
        self._fps_frames = 0
        self._fps_since = clock()

    @property
    def playing(self) -> bool:
        return self._playing

    @property
    def fps(self) -> int:
        """Frames rendered during the last full second."""
        return self._fps

    def _count_frame(self) -> None:
        self._fps_frames += 1
        now = self._clock()
        if now - self._fps_since >= 1.0:
            self._fps = self._fps_frames
            self._fps_frames = 0
            self._fps_since = now

    def tick(self, frame: Frame) -> Settings:
        """Render one frame; returns the settings it was rendered with."""
        settings = effective_settings(frame.time, self.track, self.base_settings)
        self.pipeline.update_settings(
            {**settings.to_dict(), "temporalDithering": self.temporal_dithering}
        )
        self.pipeline.set_source_texture(frame)
        self.pipeline.render(self.split_position, self.show_split)
        self._count_frame()
        return settings

    def run(
        self,
        frames: Iterable[Frame],
        on_frame: Callable[[Frame, Settings], None] | None = None,
    ) -> int:
        """Tick through ``frames`` until exhausted or :meth:`stop` is called.

        Returns the number of frames rendered.
        """
        self._playing = True
        rendered = 0
        try:
            for frame in frames:
                if not self._playing:
                    break
                settings = self.tick(frame)
                rendered += 1
                if on_frame:
                    on_frame(frame, settings)
        finally:
            self._playing = False
        logger.debug("Playback rendered %d frames", rendered)
        return rendered

    def stop(self) -> None:
        """Cancel the next pending tick; the current one completes."""
        self._playing = False


def dither_sequence(
    frames: Iterable[Frame],
    track: KeyframeTrack | None,
    base_settings: Settings,
    adjustments: Adjustments | None = None,
    cache: FrameCache | None = None,
    rng: np.random.Generator | None = None,
) -> Iterator[ProcessedFrame]:
    """Dither a frame sequence on the CPU under keyframed settings."""
    track = track if track is not None else KeyframeTrack()
    for frame in frames:
        settings = effective_settings(frame.time, track, base_settings)
        if cache is not None:
            yield cache.dither(frame, settings, adjustments, rng=rng)
        else:
            yield process_frame(frame, settings, adjustments, rng=rng)
