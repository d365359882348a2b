"""Keyframe tracks and time-based interpolation of Settings.

Numeric fields interpolate linearly between the surrounding keyframes.
Discrete fields (algorithm, serpentine) hold the earlier keyframe's
value until the next keyframe is reached.
"""

from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Sequence

from dither_studio.core.settings import NUMERIC_FIELDS, Settings

# Keyframes closer together than this are treated as the same time.
COALESCE_TOLERANCE = 0.1


@dataclass(frozen=True)
class Keyframe:
    time: float
    settings: Settings


class KeyframeTrack:
    """Time-sorted keyframes, at most one per time (within tolerance)."""

    def __init__(self, keyframes: Iterable[Keyframe] = ()) -> None:
        self._keyframes: list[Keyframe] = []
        for kf in keyframes:
            self.add(kf.time, kf.settings)

    def _find(self, time: float) -> int | None:
        for i, kf in enumerate(self._keyframes):
            if abs(kf.time - time) < COALESCE_TOLERANCE:
                return i
        return None

    def add(self, time: float, settings: Settings) -> Keyframe:
        """Insert a keyframe, replacing every existing one within tolerance.

        Dropping all neighbours in the window keeps the remaining
        keyframes at least the tolerance apart from the new one.
        """
        kf = Keyframe(max(0.0, float(time)), settings)
        self._keyframes = [
            k for k in self._keyframes
            if abs(k.time - kf.time) >= COALESCE_TOLERANCE
        ]
        self._keyframes.append(kf)
        self._keyframes.sort(key=lambda k: k.time)
        return kf

    def remove_at(self, time: float) -> bool:
        """Remove the keyframe within tolerance of ``time``, if any."""
        existing = self._find(time)
        if existing is None:
            return False
        del self._keyframes[existing]
        return True

    def at(self, time: float) -> Keyframe | None:
        existing = self._find(time)
        return None if existing is None else self._keyframes[existing]

    def clear(self) -> None:
        self._keyframes.clear()

    @property
    def keyframes(self) -> tuple[Keyframe, ...]:
        return tuple(self._keyframes)

    def __iter__(self) -> Iterator[Keyframe]:
        return iter(tuple(self._keyframes))

    def __len__(self) -> int:
        return len(self._keyframes)

    def settings_at(self, time: float, fallback: Settings) -> Settings:
        return effective_settings(time, self._keyframes, fallback)

    def to_list(self) -> list[dict[str, Any]]:
        """Serializable ``[{"time", "settings"}]`` list for timeline display."""
        return [{"time": kf.time, "settings": kf.settings.to_dict()} for kf in self._keyframes]

    @classmethod
    def from_list(cls, items: Iterable[dict[str, Any]]) -> KeyframeTrack:
        return cls(
            Keyframe(float(item["time"]), Settings.from_dict(item["settings"]))
            for item in items
        )


def _lerp(a: float, b: float, factor: float) -> float:
    return a + (b - a) * factor


def interpolate(before: Settings, after: Settings, factor: float) -> Settings:
    """Blend numeric fields; discrete fields come from ``before``."""
    changes = {
        name: _lerp(getattr(before, name), getattr(after, name), factor)
        for name in NUMERIC_FIELDS
    }
    return before.replace(**changes)


def effective_settings(
    time: float,
    track: KeyframeTrack | Sequence[Keyframe],
    fallback: Settings,
) -> Settings:
    """Settings in effect at ``time``.

    Before the first keyframe the first keyframe's settings apply, after
    the last the last one's; an empty track yields ``fallback``.
    """
    keyframes = sorted(track, key=lambda kf: kf.time)
    if not keyframes:
        return fallback

    times = [kf.time for kf in keyframes]
    if time <= times[0]:
        return keyframes[0].settings
    if time >= times[-1]:
        return keyframes[-1].settings

    idx = bisect_right(times, time)
    before, after = keyframes[idx - 1], keyframes[idx]
    span = after.time - before.time
    if span <= 0:
        return before.settings
    return interpolate(before.settings, after.settings, (time - before.time) / span)
