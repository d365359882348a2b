"""Single-pixel threshold, random and ordered-matrix dithering."""

from __future__ import annotations

import numpy as np

from dither_studio.core.buffer import PixelBuffer, is_degenerate, luminance
from dither_studio.core.matrix import generate


def _binarize_rgb(buffer: PixelBuffer, on: np.ndarray) -> PixelBuffer:
    result = buffer.copy()
    value = np.where(on, 255, 0).astype(np.uint8)
    if value.ndim == 2:
        value = value[..., None]
    result[..., :3] = value
    return result


def threshold(buffer: PixelBuffer, t: int) -> PixelBuffer:
    """Black/white by comparing the RGB mean to ``t``."""
    if is_degenerate(buffer):
        return buffer.copy()
    return _binarize_rgb(buffer, luminance(buffer) > t)


def random(
    buffer: PixelBuffer,
    t: int,
    rng: np.random.Generator | None = None,
) -> PixelBuffer:
    """Threshold with an independent per-pixel factor in [0.8, 1.2] of ``t``.

    Output differs between calls unless a seeded ``rng`` is supplied.
    """
    if is_degenerate(buffer):
        return buffer.copy()
    rng = rng or np.random.default_rng()
    factors = rng.uniform(0.8, 1.2, size=buffer.shape[:2])
    return _binarize_rgb(buffer, luminance(buffer) > t * factors)


def ordered(buffer: PixelBuffer, matrix_size: int) -> PixelBuffer:
    """Per-channel threshold against a tiled ordered matrix.

    The local threshold is ``matrix[y % n][x % n] * 255``; the global
    scalar threshold plays no part.

    Raises:
        InvalidSize: if ``matrix_size`` is not a power of two.
    """
    matrix = generate(matrix_size)
    if is_degenerate(buffer):
        return buffer.copy()

    h, w = buffer.shape[:2]
    n = matrix_size
    reps = (-(-h // n), -(-w // n))
    local = np.tile(matrix * 255.0, reps)[:h, :w]

    result = buffer.copy()
    rgb = buffer[..., :3].astype(np.float64)
    result[..., :3] = np.where(rgb > local[..., None], 255, 0).astype(np.uint8)
    return result
