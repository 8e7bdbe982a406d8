"""Elapsed/duration bookkeeping fed by source time updates."""

from __future__ import annotations

import time
from collections.abc import Callable

from meditation_player.utils.time_format import coerce_seconds

DEFAULT_MIN_INTERVAL_S = 0.25


class ProgressClock:
    """Clamp and coalesce time updates from the active source.

    Duration values that are NaN, infinite, negative or non-numeric are
    treated as unknown (0). Elapsed is clamped to ``[0, duration]`` once the
    duration is known.
    """

    def __init__(
        self,
        *,
        min_interval_s: float = DEFAULT_MIN_INTERVAL_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if min_interval_s < 0:
            raise ValueError("min_interval_s must be >= 0")
        self._min_interval_s = min_interval_s
        self._clock = clock
        self._elapsed = 0.0
        self._duration = 0.0
        self._last_published_at: float | None = None

    @property
    def elapsed_seconds(self) -> float:
        return self._elapsed

    @property
    def duration_seconds(self) -> float:
        return self._duration

    @property
    def percent(self) -> float:
        return progress_percent(self._elapsed, self._duration)

    def reset(self) -> None:
        self._elapsed = 0.0
        self._duration = 0.0
        self._last_published_at = None

    def set_duration(self, value: object) -> bool:
        """Record a new duration; returns True when it changed."""
        duration = coerce_seconds(value)
        changed = duration != self._duration
        self._duration = duration
        clamped = self._clamp(self._elapsed)
        if clamped != self._elapsed:
            self._elapsed = clamped
            changed = True
        return changed

    def update(self, elapsed: object) -> bool:
        """Record a position report; returns True when it should be published."""
        value = self._clamp(coerce_seconds(elapsed))
        if value == self._elapsed:
            return False
        self._elapsed = value
        now = self._clock()
        if (
            self._last_published_at is not None
            and now - self._last_published_at < self._min_interval_s
        ):
            return False
        self._last_published_at = now
        return True

    def _clamp(self, value: float) -> float:
        if self._duration > 0:
            return min(value, self._duration)
        return value


def progress_percent(elapsed: float, duration: float) -> float:
    """Return playback progress in percent, 0 when duration is unknown."""
    duration = coerce_seconds(duration)
    if duration <= 0:
        return 0.0
    return max(0.0, min(coerce_seconds(elapsed) / duration * 100.0, 100.0))
