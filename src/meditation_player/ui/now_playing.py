"""Current-track panel with progress line and rotating quote."""

from __future__ import annotations

from rich.text import Text
from textual.app import ComposeResult
from textual.widget import Widget
from textual.widgets import Static

from meditation_player.catalog import Track
from meditation_player.services.playback_controller import PlaybackSession
from meditation_player.utils.time_format import format_clock_pair

FALLBACK_LABEL = "(Calming Tone)"
FALLBACK_PROGRESS_TEXT = "looping calming tone"
PROGRESS_BAR_WIDTH = 30

_ERROR_TEXT = {
    "network_or_decode": "track unavailable",
    "playback_rejected": "playback was refused",
    "invalid_track_index": "no such track",
    "load_timeout": "track took too long to load",
    "invalid_locator": "track has no valid address",
}


def status_text(session: PlaybackSession) -> str:
    """One-line human description of the session mode."""
    mode = session.mode
    if mode == "loading":
        return "Loading..."
    if mode == "playing_remote":
        return "Playing"
    if mode == "playing_fallback":
        return "Playing calming tone"
    if mode == "stalled":
        return "Playing calming tone (track stalled)"
    if mode == "paused":
        return "Paused"
    return "Ready"


def error_text(session: PlaybackSession) -> str:
    if session.last_error is None:
        return ""
    return _ERROR_TEXT.get(session.last_error, session.last_error)


def progress_bar(percent: float, width: int = PROGRESS_BAR_WIDTH) -> str:
    """ASCII bar filled proportionally to `percent` (0-100)."""
    width = max(1, width)
    filled = int(round(max(0.0, min(percent, 100.0)) / 100.0 * width))
    return "#" * filled + "-" * (width - filled)


def progress_line(session: PlaybackSession) -> str:
    if session.using_fallback:
        return FALLBACK_PROGRESS_TEXT
    elapsed, duration = format_clock_pair(
        session.elapsed_seconds, session.duration_seconds
    )
    return f"{elapsed} [{progress_bar(session.progress_percent)}] {duration}"


def track_subtitle(track: Track, session: PlaybackSession) -> Text:
    text = Text(track.category, style="dim")
    if track.display_duration:
        text.append(f"  {track.display_duration}", style="dim")
    if session.using_fallback:
        text.append(f"  {FALLBACK_LABEL}", style="italic")
    return text


class NowPlayingPane(Widget):
    DEFAULT_CSS = """
    NowPlayingPane {
        layout: vertical;
        padding: 0 1;
    }

    #now-title {
        height: 1;
        text-style: bold;
    }

    #now-subtitle, #now-status, #now-progress {
        height: 1;
    }

    #now-quote {
        margin-top: 1;
        color: $text-muted;
    }
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._title = Static("", id="now-title")
        self._subtitle = Static("", id="now-subtitle")
        self._status = Static("", id="now-status")
        self._progress = Static("", id="now-progress")
        self._quote = Static("", id="now-quote")

    def compose(self) -> ComposeResult:
        yield self._title
        yield self._subtitle
        yield self._status
        yield self._progress
        yield self._quote

    def update_from_session(self, session: PlaybackSession, track: Track) -> None:
        self._title.update(track.title)
        self._subtitle.update(track_subtitle(track, session))
        status = status_text(session)
        problem = error_text(session)
        if problem:
            status = f"{status} - {problem}"
        if session.muted:
            status = f"{status} [muted]"
        self._status.update(status)
        self._progress.update(progress_line(session))

    def set_quote(self, quote: str) -> None:
        self._quote.update(Text(f'"{quote}"', style="italic"))
