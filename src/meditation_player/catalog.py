"""Immutable meditation track catalog and its JSON configuration loader.

Tracks are identified by their position in the catalog. The built-in catalog is
used unless a user catalog file provides at least one valid entry.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Track:
    """One playable catalog entry."""

    title: str
    category: str
    display_duration: str
    source_uri: str


DEFAULT_TRACKS: tuple[Track, ...] = (
    Track(
        title="Morning Focus",
        category="Focus",
        display_duration="10:00",
        source_uri="https://cdn.freesound.org/previews/567/567174_11861866-lq.mp3",
    ),
    Track(
        title="Inner Peace",
        category="Peace",
        display_duration="15:00",
        source_uri="https://cdn.freesound.org/previews/221/221576_2394245-lq.mp3",
    ),
    Track(
        title="Gratitude Practice",
        category="Gratitude",
        display_duration="8:00",
        source_uri="https://cdn.freesound.org/previews/415/415209_6525331-lq.mp3",
    ),
    Track(
        title="Stress Relief",
        category="Relief",
        display_duration="12:00",
        source_uri="https://cdn.freesound.org/previews/458/458130_7037732-lq.mp3",
    ),
    Track(
        title="Sleep Meditation",
        category="Sleep",
        display_duration="20:00",
        source_uri="https://cdn.freesound.org/previews/419/419977_1474204-lq.mp3",
    ),
    Track(
        title="Body Scan",
        category="Relaxation",
        display_duration="18:00",
        source_uri="https://cdn.freesound.org/previews/364/364725_5121236-lq.mp3",
    ),
)


class TrackCatalog:
    """Ordered, read-only sequence of tracks."""

    def __init__(self, tracks: Iterable[Track]) -> None:
        self._tracks = tuple(tracks)
        if not self._tracks:
            raise ValueError("TrackCatalog requires at least one track")

    def __len__(self) -> int:
        return len(self._tracks)

    def __getitem__(self, index: int) -> Track:
        return self._tracks[index]

    def __iter__(self) -> Iterator[Track]:
        return iter(self._tracks)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TrackCatalog):
            return NotImplemented
        return self._tracks == other._tracks

    def __hash__(self) -> int:
        return hash(self._tracks)

    def __repr__(self) -> str:
        return f"TrackCatalog({len(self._tracks)} tracks)"

    @property
    def tracks(self) -> tuple[Track, ...]:
        return self._tracks

    def contains_index(self, index: int) -> bool:
        return 0 <= index < len(self._tracks)

    def wrap_index(self, index: int) -> int:
        """Map any integer onto the catalog, wrapping in both directions."""
        return index % len(self._tracks)


def default_catalog() -> TrackCatalog:
    return TrackCatalog(DEFAULT_TRACKS)


def _format_notice(*, what_failed: str, likely_cause: str, next_step: str) -> str:
    return f"{what_failed}\nLikely cause: {likely_cause}\nNext step: {next_step}"


def _coerce_track(entry: Any) -> Track | None:
    if not isinstance(entry, dict):
        return None
    title = entry.get("title")
    if not isinstance(title, str) or not title.strip():
        return None

    def _str_or_empty(value: Any) -> str:
        return value.strip() if isinstance(value, str) else ""

    return Track(
        title=title.strip(),
        category=_str_or_empty(entry.get("category")),
        display_duration=_str_or_empty(entry.get("duration")),
        source_uri=_str_or_empty(entry.get("url")),
    )


def load_catalog_with_notice(path: Path) -> tuple[TrackCatalog, str | None]:
    """Load a catalog file, degrading to the built-in catalog on any problem."""
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.debug("No catalog file at %s; using built-in catalog.", path)
        return default_catalog(), None
    except UnicodeDecodeError:
        logger.warning("Catalog file at %s is not valid UTF-8; using built-in.", path)
        return default_catalog(), _format_notice(
            what_failed="Custom track catalog was ignored.",
            likely_cause="catalog file is not UTF-8 encoded text.",
            next_step=f"save '{path}' as UTF-8 JSON and restart.",
        )
    except OSError as exc:
        logger.warning("Failed to read catalog %s: %s; using built-in.", path, exc)
        return default_catalog(), _format_notice(
            what_failed="Custom track catalog could not be read.",
            likely_cause="catalog file is unreadable due to permissions or IO issues.",
            next_step=f"verify access to '{path}' and restart.",
        )

    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Catalog file at %s is invalid JSON; using built-in.", path)
        return default_catalog(), _format_notice(
            what_failed="Custom track catalog was ignored.",
            likely_cause="catalog file is corrupt or not valid JSON.",
            next_step=f"repair or remove '{path}' and restart.",
        )

    entries = data.get("tracks") if isinstance(data, dict) else None
    if not isinstance(entries, list):
        logger.warning("Catalog file at %s has no track list; using built-in.", path)
        return default_catalog(), _format_notice(
            what_failed="Custom track catalog was ignored.",
            likely_cause='catalog file must be an object with a "tracks" list.',
            next_step=f"fix the format of '{path}' and restart.",
        )

    tracks = [track for track in map(_coerce_track, entries) if track is not None]
    skipped = len(entries) - len(tracks)
    if skipped:
        logger.warning("Skipped %d invalid catalog entries in %s.", skipped, path)
    if not tracks:
        return default_catalog(), _format_notice(
            what_failed="Custom track catalog was ignored.",
            likely_cause="no catalog entry has a title.",
            next_step=f"add at least one titled track to '{path}'.",
        )
    logger.info("Loaded %d tracks from %s.", len(tracks), path)
    return TrackCatalog(tracks), None
