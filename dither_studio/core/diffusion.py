"""Error diffusion dithering with per-algorithm weight kernels."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from dither_studio.core.buffer import PixelBuffer, is_degenerate
from dither_studio.core.settings import Algorithm


@dataclass(frozen=True)
class Kernel:
    """Forward error weights as ((dx, dy), weight) pairs."""

    name: str
    taps: tuple[tuple[tuple[int, int], float], ...]

    @property
    def total_weight(self) -> float:
        return sum(w for _, w in self.taps)

    def mirrored(self) -> Kernel:
        """Kernel for right-to-left rows: horizontal offsets flipped."""
        return Kernel(self.name, tuple(((-dx, dy), w) for (dx, dy), w in self.taps))


def _kernel(name: str, divisor: int, rows: dict[tuple[int, int], int]) -> Kernel:
    return Kernel(name, tuple((offset, n / divisor) for offset, n in rows.items()))


FLOYD_STEINBERG = _kernel("Floyd-Steinberg", 16, {
    (1, 0): 7,
    (-1, 1): 3, (0, 1): 5, (1, 1): 1,
})

# Atkinson spreads only 6/8 of the error; the remaining 2/8 is dropped.
ATKINSON = _kernel("Atkinson", 8, {
    (1, 0): 1, (2, 0): 1,
    (-1, 1): 1, (0, 1): 1, (1, 1): 1,
    (0, 2): 1,
})

JARVIS_JUDICE_NINKE = _kernel("Jarvis-Judice-Ninke", 48, {
    (1, 0): 7, (2, 0): 5,
    (-2, 1): 3, (-1, 1): 5, (0, 1): 7, (1, 1): 5, (2, 1): 3,
    (-2, 2): 1, (-1, 2): 3, (0, 2): 5, (1, 2): 3, (2, 2): 1,
})

STUCKI = _kernel("Stucki", 42, {
    (1, 0): 8, (2, 0): 4,
    (-2, 1): 2, (-1, 1): 4, (0, 1): 8, (1, 1): 4, (2, 1): 2,
    (-2, 2): 1, (-1, 2): 2, (0, 2): 4, (1, 2): 2, (2, 2): 1,
})

BURKES = _kernel("Burkes", 32, {
    (1, 0): 8, (2, 0): 4,
    (-2, 1): 2, (-1, 1): 4, (0, 1): 8, (1, 1): 4, (2, 1): 2,
})

SIERRA = _kernel("Sierra", 32, {
    (1, 0): 5, (2, 0): 3,
    (-2, 1): 2, (-1, 1): 4, (0, 1): 5, (1, 1): 4, (2, 1): 2,
    (-1, 2): 2, (0, 2): 3, (1, 2): 2,
})

TWO_ROW_SIERRA = _kernel("Two-Row Sierra", 16, {
    (1, 0): 4, (2, 0): 3,
    (-2, 1): 1, (-1, 1): 2, (0, 1): 3, (1, 1): 2, (2, 1): 1,
})

SIERRA_LITE = _kernel("Sierra Lite", 4, {
    (1, 0): 2,
    (-1, 1): 1, (0, 1): 1,
})

# Shiau-Fan
ERROR_DIFFUSION = _kernel("Error Diffusion", 8, {
    (1, 0): 4,
    (-2, 1): 1, (-1, 1): 1, (0, 1): 2,
})

FALSE_DIFFUSION = _kernel("False Floyd-Steinberg", 8, {
    (1, 0): 3,
    (0, 1): 3, (1, 1): 2,
})

# Scanline approximation of Riemersma's decaying error history.
RIEMERSMA = _kernel("Riemersma", 16, {
    (1, 0): 8, (2, 0): 4, (3, 0): 2,
    (0, 1): 2,
})

KERNELS: dict[Algorithm, Kernel] = {
    Algorithm.FLOYD_STEINBERG: FLOYD_STEINBERG,
    Algorithm.ATKINSON: ATKINSON,
    Algorithm.JARVIS_JUDICE_NINKE: JARVIS_JUDICE_NINKE,
    Algorithm.STUCKI: STUCKI,
    Algorithm.BURKES: BURKES,
    Algorithm.SIERRA: SIERRA,
    Algorithm.TWO_ROW_SIERRA: TWO_ROW_SIERRA,
    Algorithm.SIERRA_LITE: SIERRA_LITE,
    Algorithm.ERROR_DIFFUSION: ERROR_DIFFUSION,
    Algorithm.FALSE_DIFFUSION: FALSE_DIFFUSION,
    Algorithm.RIEMERSMA: RIEMERSMA,
}


def kernel_for(algorithm: Algorithm | str) -> Kernel:
    """Kernel for an algorithm; anything without a table gets Floyd-Steinberg."""
    return KERNELS.get(Algorithm.parse(algorithm), FLOYD_STEINBERG)


def distribute_error(
    work: np.ndarray,
    x: int,
    y: int,
    error: np.ndarray,
    kernel: Kernel,
    diffusion_factor: float,
) -> None:
    """Add weighted ``error`` (per RGB channel) to the kernel's neighbors.

    ``work`` is a float (H, W, 4) array; writes are clamped to [0, 255]
    and targets outside the buffer are dropped.
    """
    h, w = work.shape[:2]
    for (dx, dy), weight in kernel.taps:
        nx, ny = x + dx, y + dy
        if nx < 0 or nx >= w or ny < 0 or ny >= h:
            continue
        target = work[ny, nx, :3] + error * (weight * diffusion_factor)
        work[ny, nx, :3] = np.clip(target, 0.0, 255.0)


def diffuse(
    buffer: PixelBuffer,
    threshold: int,
    diffusion_factor: float,
    kernel: Kernel = FLOYD_STEINBERG,
    serpentine: bool = False,
) -> PixelBuffer:
    """Binarize ``buffer`` to black/white, diffusing the residual forward.

    Args:
        buffer: RGBA uint8 buffer; not modified.
        threshold: 0-255; pixels whose RGB mean is above it become white.
        diffusion_factor: 0-1 scale applied to every kernel weight.
        kernel: error weights, see :data:`KERNELS`.
        serpentine: traverse odd rows right-to-left with a mirrored kernel.

    Returns:
        New RGBA uint8 buffer; alpha is copied unchanged.
    """
    if is_degenerate(buffer):
        return buffer.copy()

    work = buffer.astype(np.float64)
    h, w = work.shape[:2]
    mirrored = kernel.mirrored()

    for y in range(h):
        reverse = serpentine and y % 2 == 1
        row_kernel = mirrored if reverse else kernel
        xs = range(w - 1, -1, -1) if reverse else range(w)
        for x in xs:
            old = work[y, x, :3].copy()
            new = 255.0 if old.mean() > threshold else 0.0
            work[y, x, :3] = new
            distribute_error(work, x, y, old - new, row_kernel, diffusion_factor)

    return np.clip(np.rint(work), 0, 255).astype(np.uint8)
