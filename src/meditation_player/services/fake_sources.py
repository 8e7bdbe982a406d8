"""In-memory sources and audio context for deterministic testing.

The `fake` backend of the app also uses these: the remote source simulates a
looping track and the audio context produces no sound.
"""

from __future__ import annotations

import asyncio
from contextlib import suppress
from typing import Literal

from .audio_source import (
    CanPlay,
    MetadataReady,
    PlaybackStarted,
    SourceError,
    SourceEvent,
    SourceEventHandler,
    TimeUpdate,
)

FakeBehavior = Literal["ready", "error", "reject", "manual"]


class ProducerLedger:
    """Track how many audio producers hold a live resource at once."""

    def __init__(self) -> None:
        self._active: set[int] = set()
        self.peak = 0
        self.acquired = 0
        self.released = 0

    @property
    def active(self) -> int:
        return len(self._active)

    def acquire(self, producer: object) -> None:
        key = id(producer)
        if key in self._active:
            return
        self._active.add(key)
        self.acquired += 1
        self.peak = max(self.peak, len(self._active))

    def release(self, producer: object) -> None:
        key = id(producer)
        if key not in self._active:
            return
        self._active.discard(key)
        self.released += 1


class FakeRemoteSource:
    """Scripted remote source.

    `behavior` decides what happens after `load()`:
    ``ready`` reports metadata and can-play, ``error`` reports a network or
    decode failure, ``reject`` loads fine but refuses `play()`, ``manual``
    reports nothing so tests can deliver events with `emit()`.
    """

    def __init__(
        self,
        *,
        behavior: FakeBehavior = "ready",
        duration_seconds: float = 600.0,
        tick_interval_ms: int | None = None,
        ledger: ProducerLedger | None = None,
    ) -> None:
        self.behavior = behavior
        self.duration_seconds = duration_seconds
        self.uri: str | None = None
        self.playing = False
        self.muted = False
        self.disposed = False
        self.play_calls = 0
        self.pause_calls = 0
        self.dispose_calls = 0
        self.position_seconds = 0.0
        self._tick_interval_ms = tick_interval_ms
        self._ledger = ledger
        self._handler: SourceEventHandler | None = None
        self._ticker: asyncio.Task[None] | None = None

    @property
    def active(self) -> bool:
        return self.uri is not None and not self.disposed

    def set_event_handler(self, handler: SourceEventHandler) -> None:
        self._handler = handler

    async def load(self, uri: str) -> None:
        if self.disposed:
            return
        self.uri = uri
        if self._ledger is not None:
            self._ledger.acquire(self)
        if self.behavior == "error":
            await self.emit(SourceError("network_or_decode", f"cannot fetch {uri}"))
        elif self.behavior in {"ready", "reject"}:
            await self.emit(MetadataReady(self.duration_seconds))
            await self.emit(CanPlay())

    async def play(self) -> None:
        if not self.active:
            return
        self.play_calls += 1
        if self.behavior == "reject":
            await self.emit(SourceError("playback_rejected", "play() was refused"))
            return
        self.playing = True
        if self._tick_interval_ms is not None and self._ticker is None:
            self._ticker = asyncio.create_task(self._ticker_loop())
        await self.emit(PlaybackStarted())

    def pause(self) -> None:
        self.pause_calls += 1
        self.playing = False

    def set_muted(self, muted: bool) -> None:
        self.muted = muted

    def dispose(self) -> None:
        self.dispose_calls += 1
        if self.disposed:
            return
        self.disposed = True
        self.playing = False
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None
        if self._ledger is not None:
            self._ledger.release(self)

    async def emit(self, event: SourceEvent) -> None:
        """Deliver an event to the owner, even after disposal."""
        if self._handler is None:
            return
        await self._handler(event)

    async def _ticker_loop(self) -> None:
        interval = (self._tick_interval_ms or 250) / 1000
        with suppress(asyncio.CancelledError):
            while not self.disposed:
                await asyncio.sleep(interval)
                if not self.playing:
                    continue
                position = self.position_seconds + interval
                if self.duration_seconds > 0 and position >= self.duration_seconds:
                    # Tracks loop; wrap back to the start.
                    position = 0.0
                self.position_seconds = position
                await self.emit(TimeUpdate(position))


class FakeRemoteSourceFactory:
    """Create fake sources, optionally with per-call behaviors."""

    def __init__(
        self,
        *,
        behaviors: list[FakeBehavior] | None = None,
        default_behavior: FakeBehavior = "ready",
        duration_seconds: float = 600.0,
        tick_interval_ms: int | None = None,
        ledger: ProducerLedger | None = None,
    ) -> None:
        self._behaviors = list(behaviors or [])
        self._default_behavior = default_behavior
        self._duration_seconds = duration_seconds
        self._tick_interval_ms = tick_interval_ms
        self.ledger = ledger or ProducerLedger()
        self.created: list[FakeRemoteSource] = []

    def __call__(self) -> FakeRemoteSource:
        behavior = (
            self._behaviors.pop(0) if self._behaviors else self._default_behavior
        )
        source = FakeRemoteSource(
            behavior=behavior,
            duration_seconds=self._duration_seconds,
            tick_interval_ms=self._tick_interval_ms,
            ledger=self.ledger,
        )
        self.created.append(source)
        return source


class FakeOscillator:
    def __init__(
        self, *, frequency_hz: float, gain: float, ledger: ProducerLedger | None
    ) -> None:
        self.frequency_hz = frequency_hz
        self.gain = gain
        self.running = False
        self.start_calls = 0
        self.stop_calls = 0
        self._ledger = ledger

    def start(self) -> None:
        self.start_calls += 1
        if self.running:
            return
        self.running = True
        if self._ledger is not None:
            self._ledger.acquire(self)

    def stop(self) -> None:
        self.stop_calls += 1
        if not self.running:
            return
        self.running = False
        if self._ledger is not None:
            self._ledger.release(self)

    def set_gain(self, gain: float) -> None:
        self.gain = gain


class FakeAudioContext:
    """Silent audio context that records every oscillator it creates."""

    def __init__(
        self, *, ledger: ProducerLedger | None = None, fail: bool = False
    ) -> None:
        self.oscillators: list[FakeOscillator] = []
        self.ledger = ledger
        self.fail = fail
        self.close_calls = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def running_oscillators(self) -> list[FakeOscillator]:
        return [osc for osc in self.oscillators if osc.running]

    def create_oscillator(self, *, frequency_hz: float, gain: float) -> FakeOscillator:
        if self._closed:
            raise RuntimeError("Audio context is closed.")
        if self.fail:
            raise OSError("No default output device available")
        oscillator = FakeOscillator(
            frequency_hz=frequency_hz, gain=gain, ledger=self.ledger
        )
        self.oscillators.append(oscillator)
        return oscillator

    def close(self) -> None:
        self.close_calls += 1
        if self._closed:
            return
        self._closed = True
        for oscillator in self.oscillators:
            oscillator.stop()
