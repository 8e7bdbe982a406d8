"""Cross-module event/message models for service and UI communication.

Dataclass events are used for controller-to-app signaling, while
`textual.message` types are used for widget-level interaction routing.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from textual.message import Message

if TYPE_CHECKING:
    from meditation_player.services.playback_controller import PlaybackSession


@dataclass(frozen=True)
class SessionChanged:
    """Controller event emitted when the playback session snapshot changes."""

    session: PlaybackSession


class TrackRowSelected(Message):
    """UI message for activating (playing) a catalog row."""

    def __init__(self, index: int) -> None:
        super().__init__()
        self.index = index
