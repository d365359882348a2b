"""Algorithm registry and the main ``apply`` entry point.

Every identifier maps to an engine plus the subset of Settings fields it
reads. Identifiers without a registration resolve to the default
(Floyd-Steinberg) engine.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

import numpy as np

from dither_studio.core import threshold as threshold_engines
from dither_studio.core.buffer import PixelBuffer, is_degenerate
from dither_studio.core.diffusion import KERNELS, Kernel, diffuse
from dither_studio.core.quantize import quantize
from dither_studio.core.settings import Algorithm, Settings

logger = logging.getLogger(__name__)

EngineFn = Callable[[PixelBuffer, Settings, np.random.Generator | None], PixelBuffer]

DEFAULT_ALGORITHM = Algorithm.FLOYD_STEINBERG


@dataclass(frozen=True)
class Engine:
    """A registered dithering engine."""

    name: str
    run: EngineFn
    parameters: tuple[str, ...]
    family: str  # "diffusion" or "ordered"; selects the GPU shader program


def _diffusion_engine(kernel: Kernel) -> EngineFn:
    def run(buffer, settings, rng=None):
        return diffuse(
            buffer,
            settings.threshold,
            settings.diffusion_factor,
            kernel,
            serpentine=settings.serpentine,
        )
    return run


def _threshold_engine(buffer, settings, rng=None):
    return threshold_engines.threshold(buffer, settings.threshold)


def _random_engine(buffer, settings, rng=None):
    return threshold_engines.random(buffer, settings.threshold, rng=rng)


def _ordered_engine(buffer, settings, rng=None):
    return threshold_engines.ordered(buffer, settings.matrix_size)


_DIFFUSION_PARAMS = ("threshold", "diffusion_factor", "serpentine")
_ORDERED_PARAMS = ("matrix_size",)

REGISTRY: dict[Algorithm, Engine] = {
    algorithm: Engine(kernel.name, _diffusion_engine(kernel), _DIFFUSION_PARAMS, "diffusion")
    for algorithm, kernel in KERNELS.items()
}
REGISTRY[Algorithm.THRESHOLD] = Engine(
    "Simple Threshold", _threshold_engine, ("threshold",), "diffusion"
)
REGISTRY[Algorithm.RANDOM] = Engine(
    "Random", _random_engine, ("threshold",), "diffusion"
)
for _algorithm in (Algorithm.BAYER, Algorithm.ORDERED, Algorithm.CLUSTERED, Algorithm.HALFTONE):
    REGISTRY[_algorithm] = Engine("Ordered Matrix", _ordered_engine, _ORDERED_PARAMS, "ordered")


def resolve(algorithm: Algorithm | str) -> Engine:
    """Engine for ``algorithm``, or the default engine if none is registered."""
    key = Algorithm.parse(algorithm)
    engine = REGISTRY.get(key)
    if engine is None:
        logger.debug("No engine registered for %s; using %s", key.value, DEFAULT_ALGORITHM.value)
        engine = REGISTRY[DEFAULT_ALGORITHM]
    return engine


def add_noise(
    buffer: PixelBuffer,
    amount: float,
    rng: np.random.Generator | None = None,
) -> PixelBuffer:
    """Add uniform noise in [-amount, amount] * 255 to RGB."""
    if amount <= 0 or is_degenerate(buffer):
        return buffer.copy()
    rng = rng or np.random.default_rng()
    noise = rng.uniform(-amount, amount, size=buffer.shape[:2] + (3,)) * 255.0
    result = buffer.copy()
    result[..., :3] = np.clip(buffer[..., :3] + noise, 0, 255).astype(np.uint8)
    return result


def apply(
    buffer: PixelBuffer,
    settings: Settings,
    rng: np.random.Generator | None = None,
) -> PixelBuffer:
    """Quantize, then dither with the engine selected by ``settings.algorithm``.

    The caller's buffer is never modified; a new buffer is returned.
    """
    if is_degenerate(buffer):
        return buffer.copy()

    result = quantize(buffer, settings.color_reduction)
    if settings.noise_amount > 0:
        result = add_noise(result, settings.noise_amount, rng=rng)

    engine = resolve(settings.algorithm)
    for _ in range(settings.passes):
        result = engine.run(result, settings, rng)
    return result
