"""Dithering settings record shared by the CPU and GPU paths."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, fields, replace
from enum import Enum
from typing import Any, Mapping


class Algorithm(str, Enum):
    FLOYD_STEINBERG = "floydSteinberg"
    ATKINSON = "atkinson"
    JARVIS_JUDICE_NINKE = "jarvisJudiceNinke"
    STUCKI = "stucki"
    BURKES = "burkes"
    SIERRA = "sierra"
    TWO_ROW_SIERRA = "twoRowSierra"
    SIERRA_LITE = "sierraLite"
    BAYER = "bayer"
    ORDERED = "ordered"
    CLUSTERED = "clustered"
    HALFTONE = "halftone"
    THRESHOLD = "threshold"
    RANDOM = "random"
    DOT_SCREEN = "dotScreen"
    CROSS_HATCH = "crossHatch"
    ERROR_DIFFUSION = "errorDiffusion"
    RIEMERSMA = "riemersma"
    FALSE_DIFFUSION = "falseDiffusion"
    PATTERN = "pattern"

    @classmethod
    def parse(cls, value: str | Algorithm) -> Algorithm:
        """Resolve an identifier, falling back to Floyd-Steinberg."""
        try:
            return cls(value)
        except ValueError:
            return cls.FLOYD_STEINBERG


ALGORITHM_NAMES: dict[Algorithm, str] = {
    Algorithm.FLOYD_STEINBERG: "Floyd-Steinberg",
    Algorithm.ATKINSON: "Atkinson",
    Algorithm.JARVIS_JUDICE_NINKE: "Jarvis-Judice-Ninke",
    Algorithm.STUCKI: "Stucki",
    Algorithm.BURKES: "Burkes",
    Algorithm.SIERRA: "Sierra",
    Algorithm.TWO_ROW_SIERRA: "Two-Row Sierra",
    Algorithm.SIERRA_LITE: "Sierra Lite",
    Algorithm.BAYER: "Bayer Matrix",
    Algorithm.ORDERED: "Ordered",
    Algorithm.CLUSTERED: "Clustered Dot",
    Algorithm.HALFTONE: "Halftone",
    Algorithm.THRESHOLD: "Simple Threshold",
    Algorithm.RANDOM: "Random",
    Algorithm.DOT_SCREEN: "Dot Screen",
    Algorithm.CROSS_HATCH: "Cross Hatch",
    Algorithm.ERROR_DIFFUSION: "Error Diffusion",
    Algorithm.RIEMERSMA: "Riemersma",
    Algorithm.FALSE_DIFFUSION: "False Diffusion",
    Algorithm.PATTERN: "Pattern Dithering",
}

# Field name -> key used in the JSON shape shared with collaborators.
_JSON_KEYS = {
    "algorithm": "algorithm",
    "threshold": "threshold",
    "diffusion_factor": "diffusionFactor",
    "matrix_size": "matrixSize",
    "color_reduction": "colorReduction",
    "serpentine": "serpentine",
    "noise_amount": "noiseAmount",
    "passes": "passes",
}

NUMERIC_FIELDS = (
    "threshold",
    "diffusion_factor",
    "matrix_size",
    "color_reduction",
    "noise_amount",
    "passes",
)


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def _clamp_int(value: float, lo: int, hi: int) -> int:
    return int(_clamp(round(value), lo, hi))


def nearest_power_of_two(value: float, lo: int = 2, hi: int = 16) -> int:
    """Snap a size to the nearest power of two within [lo, hi]."""
    if value <= lo:
        return lo
    size = 2 ** round(math.log2(value))
    return int(_clamp(size, lo, hi))


@dataclass(frozen=True)
class Settings:
    """One dithering configuration. Replaced wholesale, never mutated."""

    algorithm: Algorithm = Algorithm.FLOYD_STEINBERG
    threshold: int = 128  # 0 to 255
    diffusion_factor: float = 0.75  # 0 to 1
    matrix_size: int = 8  # power of two, 2 to 16
    color_reduction: int = 8  # bits per channel, 1 to 8
    serpentine: bool = True
    noise_amount: float = 0.0  # 0 to 1
    passes: int = 1  # 1 to 4

    def __post_init__(self) -> None:
        # Frozen: write the clamped values through object.__setattr__.
        set_ = object.__setattr__
        set_(self, "algorithm", Algorithm.parse(self.algorithm))
        set_(self, "threshold", _clamp_int(self.threshold, 0, 255))
        set_(self, "diffusion_factor", float(_clamp(self.diffusion_factor, 0.0, 1.0)))
        set_(self, "matrix_size", nearest_power_of_two(self.matrix_size))
        set_(self, "color_reduction", _clamp_int(self.color_reduction, 1, 8))
        set_(self, "serpentine", bool(self.serpentine))
        set_(self, "noise_amount", float(_clamp(self.noise_amount, 0.0, 1.0)))
        set_(self, "passes", _clamp_int(self.passes, 1, 4))

    def replace(self, **changes: Any) -> Settings:
        """Return a new record with ``changes`` applied and clamped."""
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """camelCase dict, as exchanged with the timeline and preset store."""
        out = {}
        for name, value in asdict(self).items():
            if isinstance(value, Algorithm):
                value = value.value
            out[_JSON_KEYS[name]] = value
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Settings:
        """Build from a camelCase or snake_case mapping; unknown keys are ignored."""
        return cls(**normalize_keys(data))


_FIELD_BY_KEY = {key: name for name, key in _JSON_KEYS.items()}


def normalize_keys(data: Mapping[str, Any]) -> dict[str, Any]:
    """Map camelCase or snake_case keys to Settings field names, dropping the rest."""
    names = {f.name for f in fields(Settings)}
    out = {}
    for key, value in data.items():
        name = key if key in names else _FIELD_BY_KEY.get(key)
        if name is not None:
            out[name] = value
    return out
