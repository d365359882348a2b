"""Per-channel color precision reduction."""

from __future__ import annotations

import numpy as np

from dither_studio.core.buffer import PixelBuffer


def quantization_step(bits: int) -> int:
    """Distance between representable levels for a given bit depth."""
    bits = max(1, min(8, int(bits)))
    return 2 ** (8 - bits)


def quantize(buffer: PixelBuffer, bits: int) -> PixelBuffer:
    """Reduce R, G and B to ``bits`` of precision; alpha is untouched.

    Each channel becomes ``floor(value / step) * step`` with
    ``step = 2 ** (8 - bits)``. Idempotent for a fixed ``bits``.
    """
    result = buffer.copy()
    step = quantization_step(bits)
    if step == 1:
        return result
    rgb = result[..., :3]
    result[..., :3] = (rgb // step) * step
    return result
