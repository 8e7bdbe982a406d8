"""Meditation playlist pane."""

from __future__ import annotations

from rich.text import Text
from textual.app import ComposeResult
from textual.containers import Vertical
from textual.events import Click, Key
from textual.widget import Widget
from textual.widgets import Static

from meditation_player.catalog import Track, TrackCatalog
from meditation_player.events import TrackRowSelected
from meditation_player.services.playback_controller import PlaybackSession


def format_track_row(track: Track, *, current: bool, playing: bool) -> Text:
    """Two-line row: marker + title, then category and display duration."""
    marker = ">" if playing else ("*" if current else " ")
    text = Text()
    text.append(f"{marker} ")
    text.append(track.title, style="bold" if current else "")
    text.append("\n  ")
    text.append(track.category, style="dim")
    if track.display_duration:
        text.append(f"  {track.display_duration}", style="dim")
    return text


class TrackRow(Static):
    def __init__(self, index: int, track: Track, **kwargs) -> None:
        super().__init__(
            format_track_row(track, current=False, playing=False),
            classes="track-row",
            **kwargs,
        )
        self.index = index
        self.track = track
        self.can_focus = True

    def set_flags(self, *, current: bool, playing: bool) -> None:
        self.set_class(current, "-current")
        self.update(format_track_row(self.track, current=current, playing=playing))

    def on_click(self, event: Click) -> None:
        self.post_message(TrackRowSelected(self.index))
        event.stop()

    def on_key(self, event: Key) -> None:
        if event.key != "enter":
            return
        self.post_message(TrackRowSelected(self.index))
        event.stop()


class TrackListPane(Widget):
    DEFAULT_CSS = """
    TrackListPane {
        layout: vertical;
    }

    #playlist-title {
        height: 1;
        text-style: bold;
    }

    TrackListPane .track-row {
        height: 2;
        margin-bottom: 1;
        background: $panel;
    }

    TrackListPane .track-row.-current {
        background: $boost;
    }

    TrackListPane .track-row:focus {
        text-style: reverse;
    }
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._rows: list[TrackRow] = []
        self._rows_container = Vertical(id="track-rows")

    def compose(self) -> ComposeResult:
        yield Static("Meditation Playlist", id="playlist-title")
        yield self._rows_container

    @property
    def rows(self) -> list[TrackRow]:
        return list(self._rows)

    async def set_catalog(self, catalog: TrackCatalog) -> None:
        await self._rows_container.remove_children()
        self._rows = [
            TrackRow(index, track, id=f"track-{index}")
            for index, track in enumerate(catalog)
        ]
        await self._rows_container.mount(*self._rows)

    def update_from_session(self, session: PlaybackSession) -> None:
        for row in self._rows:
            current = row.index == session.current_track_index
            row.set_flags(current=current, playing=current and session.is_playing)
