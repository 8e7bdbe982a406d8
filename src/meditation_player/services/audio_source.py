"""Audio source contracts and event payloads.

`PlaybackController` depends on these protocols to stay engine-agnostic.
Concrete remote sources (fake/VLC) translate engine-specific behavior into the
shared events below; tone oscillators are created by an `AudioContext`.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Literal, Protocol

ErrorKind = Literal[
    "network_or_decode",
    "playback_rejected",
    "invalid_track_index",
    "load_timeout",
    "invalid_locator",
]


@dataclass(frozen=True)
class SourceEvent:
    """Marker base type for source-originated events."""

    pass


@dataclass(frozen=True)
class MetadataReady(SourceEvent):
    """Media duration became known (seconds; may be NaN/0 when unknown)."""

    duration_seconds: float


@dataclass(frozen=True)
class TimeUpdate(SourceEvent):
    """Native playback position report in seconds."""

    elapsed_seconds: float


@dataclass(frozen=True)
class CanPlay(SourceEvent):
    """Enough media is available to start playback."""

    pass


@dataclass(frozen=True)
class PlaybackStarted(SourceEvent):
    """A `play()` request was accepted and audio is flowing."""

    pass


@dataclass(frozen=True)
class SourceError(SourceEvent):
    """Load, decode or playback failure reported by a source."""

    kind: ErrorKind
    message: str = ""


SourceEventHandler = Callable[[SourceEvent], Awaitable[None]]


class RemoteAudioSource(Protocol):
    """One attempt to load and play one network locator."""

    @property
    def active(self) -> bool: ...

    def set_event_handler(self, handler: SourceEventHandler) -> None: ...

    async def load(self, uri: str) -> None: ...

    async def play(self) -> None: ...

    def pause(self) -> None: ...

    def set_muted(self, muted: bool) -> None: ...

    def dispose(self) -> None: ...


RemoteSourceFactory = Callable[[], RemoteAudioSource]


class Oscillator(Protocol):
    """A single continuous tone producer connected to the audio output."""

    def start(self) -> None: ...

    def stop(self) -> None: ...

    def set_gain(self, gain: float) -> None: ...


class AudioContext(Protocol):
    """Process-wide audio output facility that hands out oscillators."""

    @property
    def closed(self) -> bool: ...

    def create_oscillator(self, *, frequency_hz: float, gain: float) -> Oscillator: ...

    def close(self) -> None: ...


AudioContextFactory = Callable[[], AudioContext]
