"""Transport controls widget below the now-playing pane."""

from __future__ import annotations

from typing import Literal

from textual.app import ComposeResult
from textual.containers import Horizontal
from textual.events import Click, Key
from textual.message import Message
from textual.widget import Widget
from textual.widgets import Static

from meditation_player.services.playback_controller import PlaybackSession

TransportName = Literal["prev", "toggle_play", "next", "mute"]


class TransportAction(Message):
    bubble = True

    def __init__(self, action: TransportName) -> None:
        super().__init__()
        self.action = action


class TransportControls(Widget):
    DEFAULT_CSS = """
    TransportControls {
        height: 1;
        layout: horizontal;
    }

    #transport-prev, #transport-play, #transport-next, #transport-mute {
        width: 10;
        margin-right: 1;
    }

    TransportControls .transport-button {
        background: $panel;
        color: $text;
        height: 1;
        padding: 0 1;
        content-align: center middle;
    }

    TransportControls .transport-button:focus {
        background: $boost;
        color: $text;
    }
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._prev_button = TransportButton("<<", action="prev", id="transport-prev")
        self._play_button = TransportButton(
            "PLAY", action="toggle_play", id="transport-play"
        )
        self._next_button = TransportButton(">>", action="next", id="transport-next")
        self._mute_button = TransportButton("MUTE", action="mute", id="transport-mute")

    def compose(self) -> ComposeResult:
        yield Horizontal(
            self._prev_button,
            self._play_button,
            self._next_button,
            self._mute_button,
        )

    def update_from_session(self, session: PlaybackSession) -> None:
        playing = session.is_playing or (
            session.mode == "loading" and session.play_intent
        )
        self._play_button.update("PAUSE" if playing else "PLAY")
        self._mute_button.update("UNMUTE" if session.muted else "MUTE")


class TransportButton(Static):
    def __init__(self, label: str, *, action: TransportName, **kwargs) -> None:
        super().__init__(label, classes="transport-button", **kwargs)
        self.action = action
        self.can_focus = True

    def on_click(self, event: Click) -> None:
        self.post_message(TransportAction(self.action))
        event.stop()

    def on_key(self, event: Key) -> None:
        if event.key not in {"enter", "space"}:
            return
        self.post_message(TransportAction(self.action))
        event.stop()
