"""Pixel buffers and frames exchanged with the engine's collaborators.

A PixelBuffer is a ``uint8`` numpy array of shape (height, width, 4),
row-major with the origin at the top-left. Images decoded elsewhere
enter through :func:`as_pixel_buffer` and leave through :func:`to_image`.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import numpy as np
from PIL import Image

PixelBuffer = np.ndarray


@dataclass
class Frame:
    """A single still image or video frame."""

    buffer: PixelBuffer
    index: int = 0
    time: float = 0.0  # Presentation time in seconds

    @property
    def width(self) -> int:
        return self.buffer.shape[1]

    @property
    def height(self) -> int:
        return self.buffer.shape[0]


def new_buffer(width: int, height: int, color=(0, 0, 0, 255)) -> PixelBuffer:
    """Create a solid-color buffer."""
    buf = np.empty((height, width, 4), dtype=np.uint8)
    buf[:, :] = color
    return buf


def as_pixel_buffer(source: np.ndarray | Image.Image) -> PixelBuffer:
    """Convert a PIL image or RGB/RGBA/grayscale array to an RGBA buffer.

    Always returns a new array the caller owns.
    """
    if isinstance(source, Image.Image):
        return np.array(source.convert("RGBA"), dtype=np.uint8)

    arr = np.asarray(source)
    if arr.ndim == 2:
        arr = np.stack([arr, arr, arr], axis=-1)
    if arr.ndim != 3 or arr.shape[2] not in (3, 4):
        raise ValueError(f"Expected an (H, W, 3|4) array, got shape {arr.shape}")
    arr = np.clip(arr, 0, 255).astype(np.uint8)
    if arr.shape[2] == 3:
        alpha = np.full(arr.shape[:2] + (1,), 255, dtype=np.uint8)
        arr = np.concatenate([arr, alpha], axis=2)
    return arr.copy()


def is_degenerate(buffer: PixelBuffer) -> bool:
    """True for zero-area buffers, which every engine treats as a no-op."""
    return buffer.shape[0] == 0 or buffer.shape[1] == 0


def luminance(buffer: PixelBuffer) -> np.ndarray:
    """Unweighted mean of R, G and B as a float (H, W) array."""
    return buffer[..., :3].astype(np.float64).mean(axis=2)


def to_image(buffer: PixelBuffer) -> Image.Image:
    """Wrap a buffer as an RGBA PIL image."""
    return Image.fromarray(np.ascontiguousarray(buffer, dtype=np.uint8), "RGBA")


def load_image(path: str | Path) -> PixelBuffer:
    """Read a still image file into a buffer."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    with Image.open(path) as img:
        return as_pixel_buffer(img)
