"""Recursive ordered (Bayer-style) threshold matrices."""

from __future__ import annotations

from functools import lru_cache

import numpy as np

from dither_studio.core.errors import InvalidSize

# Additive offset per quadrant q = 2 * (y >= half) + (x >= half).
QUADRANT_OFFSETS = (0.0, 2 / 4, 3 / 4, 1 / 4)

BASE_MATRIX = ((0 / 4, 2 / 4), (3 / 4, 1 / 4))


def is_power_of_two(n: int) -> bool:
    return n >= 2 and (n & (n - 1)) == 0


@lru_cache(maxsize=None)
def _generate(n: int) -> tuple[tuple[float, ...], ...]:
    if n == 2:
        return BASE_MATRIX

    half = n // 2
    prev = _generate(half)
    rows = []
    for y in range(n):
        row = []
        for x in range(n):
            q = 2 * (y // half) + (x // half)
            row.append(prev[y % half][x % half] / 4 + QUADRANT_OFFSETS[q])
        rows.append(tuple(row))
    return tuple(rows)


def generate(n: int) -> np.ndarray:
    """Return an n x n threshold matrix with values in [0, 1).

    Raises:
        InvalidSize: if ``n`` is not a power of two >= 2.
    """
    if not isinstance(n, (int, np.integer)) or not is_power_of_two(int(n)):
        raise InvalidSize(n)
    # Cached as nested tuples; hand out a fresh array each call.
    return np.array(_generate(int(n)), dtype=np.float64)
