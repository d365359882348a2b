"""Tone adjustments applied to the source before dithering."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from PIL import ImageEnhance

from dither_studio.core.buffer import PixelBuffer, as_pixel_buffer, to_image


@dataclass(frozen=True)
class Adjustments:
    brightness: int = 0  # -100 to 100
    contrast: int = 0  # -100 to 100
    saturation: int = 0  # -100 to 100
    gamma: float = 1.0  # 0.1 to 3.0
    sharpness: int = 0  # 0 to 100

    def __post_init__(self) -> None:
        set_ = object.__setattr__
        set_(self, "brightness", int(max(-100, min(100, round(self.brightness)))))
        set_(self, "contrast", int(max(-100, min(100, round(self.contrast)))))
        set_(self, "saturation", int(max(-100, min(100, round(self.saturation)))))
        set_(self, "gamma", float(max(0.1, min(3.0, self.gamma))))
        set_(self, "sharpness", int(max(0, min(100, round(self.sharpness)))))

    @property
    def is_identity(self) -> bool:
        return self == Adjustments()


def _contrast_factor(contrast: int) -> float:
    return (259 * (contrast + 255)) / (255 * (259 - contrast))


def apply_adjustments(buffer: PixelBuffer, adjustments: Adjustments) -> PixelBuffer:
    """Apply brightness, contrast, saturation, gamma and sharpness to RGB."""
    if adjustments.is_identity or buffer.size == 0:
        return buffer.copy()

    rgb = buffer[..., :3].astype(np.float64)

    # Brightness: shift
    if adjustments.brightness:
        rgb = np.clip(rgb + adjustments.brightness * 2.55, 0.0, 255.0)

    # Contrast: scale around 128
    if adjustments.contrast:
        factor = _contrast_factor(adjustments.contrast)
        rgb = np.clip(factor * (rgb - 128.0) + 128.0, 0.0, 255.0)

    # Saturation: blend with luminance
    if adjustments.saturation:
        gray = rgb.mean(axis=2, keepdims=True)
        scale = 1.0 + adjustments.saturation / 100.0
        rgb = np.clip(gray + (rgb - gray) * scale, 0.0, 255.0)

    if adjustments.gamma != 1.0:
        rgb = 255.0 * (rgb / 255.0) ** (1.0 / adjustments.gamma)

    result = buffer.copy()
    result[..., :3] = np.clip(np.rint(rgb), 0, 255).astype(np.uint8)

    if adjustments.sharpness:
        img = to_image(result)
        enhanced = ImageEnhance.Sharpness(img).enhance(1.0 + adjustments.sharpness / 50.0)
        sharpened = as_pixel_buffer(enhanced)
        sharpened[..., 3] = buffer[..., 3]
        result = sharpened

    return result
