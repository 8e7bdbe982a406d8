"""Time formatting helpers for the UI."""

from __future__ import annotations

import math


def format_clock(seconds: float) -> str:
    """Format seconds as M:SS; unknown or non-numeric values render as 0:00."""
    total_seconds = int(coerce_seconds(seconds))
    minutes = total_seconds // 60
    secs = total_seconds % 60
    return f"{minutes}:{secs:02d}"


def format_clock_pair(elapsed: float, duration: float) -> tuple[str, str]:
    """Format elapsed and duration for the progress line."""
    return format_clock(elapsed), format_clock(duration)


def coerce_seconds(value: object) -> float:
    """Return a finite, non-negative float or 0.0."""
    try:
        numeric = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(numeric):
        return 0.0
    return max(0.0, numeric)
