"""Runtime configuration normalization helpers.

These helpers keep CLI flag and settings-file interpretation deterministic
across entrypoints.
"""

from __future__ import annotations

import math

SOURCE_BACKENDS = ("fake", "vlc")
DEFAULT_SOURCE_BACKEND = "vlc"
LOAD_TIMEOUT_MIN_S = 1.0
LOAD_TIMEOUT_MAX_S = 120.0
DEFAULT_LOAD_TIMEOUT_S = 10.0


def resolve_log_level(*, verbose: bool, quiet: bool) -> str:
    """Resolve effective log level from CLI flags.

    Precedence is deterministic: --quiet overrides --verbose.
    """
    if quiet:
        return "WARNING"
    if verbose:
        return "DEBUG"
    return "INFO"


def resolve_backend_name(cli_backend: str | None, settings_backend: str | None) -> str:
    """Pick the source backend: CLI flag first, then persisted settings."""
    if cli_backend in SOURCE_BACKENDS:
        return cli_backend
    if settings_backend in SOURCE_BACKENDS:
        return settings_backend
    return DEFAULT_SOURCE_BACKEND


def clamp_load_timeout(value: float | None) -> float:
    """Clamp the load watchdog interval; invalid values use the default."""
    if value is None:
        return DEFAULT_LOAD_TIMEOUT_S
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return DEFAULT_LOAD_TIMEOUT_S
    if not math.isfinite(numeric):
        return DEFAULT_LOAD_TIMEOUT_S
    return max(LOAD_TIMEOUT_MIN_S, min(numeric, LOAD_TIMEOUT_MAX_S))
