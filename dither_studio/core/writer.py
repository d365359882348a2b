"""Encode dithered buffers as PNG stills, animated GIFs or MP4 video.

Stills and GIFs go through Pillow; video through OpenCV's VideoWriter.
"""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Callable, Iterable

import cv2
import numpy as np
from PIL import Image

from dither_studio.core.buffer import PixelBuffer, to_image
from dither_studio.core.processor import ProcessedFrame

logger = logging.getLogger(__name__)

STILL_SUFFIXES = (".png", ".bmp", ".tif", ".tiff", ".webp")
VIDEO_SUFFIXES = (".mp4", ".avi", ".mov")


def encode_png(buffer: PixelBuffer) -> bytes:
    """Encode a buffer as PNG bytes (the download payload)."""
    out = io.BytesIO()
    to_image(buffer).save(out, format="PNG")
    return out.getvalue()


def save_image(buffer: PixelBuffer, output_path: Path) -> None:
    """Save a single buffer; format follows the file suffix."""
    output_path = Path(output_path)
    img = to_image(buffer)
    if output_path.suffix.lower() in (".jpg", ".jpeg"):
        img = img.convert("RGB")
    img.save(str(output_path))
    logger.info("Saved %dx%d image to %s", img.width, img.height, output_path)


def save_png(buffer: PixelBuffer, output_path: Path) -> None:
    save_image(buffer, Path(output_path).with_suffix(".png"))


def _frame_duration_ms(fps: float) -> int:
    return max(int(round(1000.0 / max(fps, 0.1))), 10)


def save_gif(
    frames: Iterable[ProcessedFrame],
    output_path: Path,
    fps: float = 24.0,
    on_progress: Callable[[int, int], None] | None = None,
    total_frames: int = 0,
) -> None:
    """Save processed frames as an animated GIF.

    Args:
        frames: iterable of ProcessedFrame objects.
        output_path: path to write the GIF.
        fps: playback rate.
        on_progress: callback(current_frame, total_frames).
        total_frames: total frame count for progress reporting.
    """
    images: list[Image.Image] = []

    for i, frame in enumerate(frames):
        images.append(to_image(frame.buffer).convert("RGB"))
        if on_progress:
            on_progress(i + 1, total_frames)

    if not images:
        raise ValueError("No frames to save")

    images[0].save(
        str(output_path),
        save_all=True,
        append_images=images[1:],
        duration=_frame_duration_ms(fps),
        loop=0,
        disposal=2,
    )
    logger.info("Saved %d frames to %s", len(images), output_path)


def save_mp4(
    frames: Iterable[ProcessedFrame],
    output_path: Path,
    fps: float = 24.0,
    on_progress: Callable[[int, int], None] | None = None,
    total_frames: int = 0,
) -> None:
    """Save processed frames as an MP4 video.

    Args:
        frames: iterable of ProcessedFrame objects.
        output_path: path to write the MP4.
        fps: output frame rate.
        on_progress: callback(current_frame, total_frames).
        total_frames: total frame count for progress reporting.
    """
    writer: cv2.VideoWriter | None = None
    count = 0

    try:
        for i, frame in enumerate(frames):
            rgb = np.ascontiguousarray(frame.buffer[..., :3])
            bgr = cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR)

            if writer is None:
                h, w = bgr.shape[:2]
                fourcc = cv2.VideoWriter_fourcc(*"mp4v")
                writer = cv2.VideoWriter(str(output_path), fourcc, fps, (w, h))

            writer.write(bgr)
            count += 1
            if on_progress:
                on_progress(i + 1, total_frames)
    finally:
        if writer is not None:
            writer.release()

    if count == 0:
        raise ValueError("No frames to save")
    logger.info("Saved %d frames to %s", count, output_path)


def save_output(
    frames: Iterable[ProcessedFrame],
    output_path: Path,
    fps: float = 24.0,
    on_progress: Callable[[int, int], None] | None = None,
    total_frames: int = 0,
) -> None:
    """Save frames in format determined by output file extension.

    Still formats take exactly the first frame.
    """
    output_path = Path(output_path)
    suffix = output_path.suffix.lower()
    if suffix == ".gif":
        save_gif(frames, output_path, fps, on_progress, total_frames)
    elif suffix in VIDEO_SUFFIXES:
        save_mp4(frames, output_path, fps, on_progress, total_frames)
    elif suffix in STILL_SUFFIXES + (".jpg", ".jpeg"):
        first = next(iter(frames), None)
        if first is None:
            raise ValueError("No frames to save")
        save_image(first.buffer, output_path)
        if on_progress:
            on_progress(1, 1)
    else:
        raise ValueError(f"Unsupported output format: {suffix}")
