"""Playback orchestration between UI intent and audio sources.

`PlaybackController` is the single authority over which audio producer is
active. It runs the session state machine, tags every load attempt with a
generation so late events from superseded loads are dropped, and falls back
to a synthesized tone whenever the remote track cannot be played.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass, replace
from functools import partial
from typing import Any, Literal
from urllib.parse import urlsplit

from meditation_player.catalog import TrackCatalog
from meditation_player.events import SessionChanged
from meditation_player.runtime_config import DEFAULT_LOAD_TIMEOUT_S
from meditation_player.services.audio_source import (
    AudioContext,
    AudioContextFactory,
    CanPlay,
    ErrorKind,
    MetadataReady,
    PlaybackStarted,
    RemoteAudioSource,
    RemoteSourceFactory,
    SourceError,
    SourceEvent,
    TimeUpdate,
)
from meditation_player.services.progress_clock import ProgressClock, progress_percent
from meditation_player.services.tone_source import SynthesizedToneSource

logger = logging.getLogger(__name__)

Mode = Literal[
    "idle", "loading", "playing_remote", "playing_fallback", "paused", "stalled"
]
PLAYING_MODES: frozenset[str] = frozenset(
    {"playing_remote", "playing_fallback", "stalled"}
)
FALLBACK_MODES: frozenset[str] = frozenset({"playing_fallback", "stalled"})


class ControllerDisposedError(RuntimeError):
    """Raised when a disposed controller is used or disposed again."""


@dataclass(frozen=True)
class PlaybackSession:
    """Immutable snapshot of the playback session exposed to the UI."""

    current_track_index: int = 0
    mode: Mode = "idle"
    muted: bool = False
    elapsed_seconds: float = 0.0
    duration_seconds: float = 0.0
    last_error: ErrorKind | None = None
    generation: int = 0
    play_intent: bool = False
    resume_mode: Mode | None = None
    disposed: bool = False

    @property
    def is_playing(self) -> bool:
        return self.mode in PLAYING_MODES

    @property
    def using_fallback(self) -> bool:
        if self.mode in FALLBACK_MODES:
            return True
        return self.mode == "paused" and self.resume_mode in FALLBACK_MODES

    @property
    def progress_percent(self) -> float:
        return progress_percent(self.elapsed_seconds, self.duration_seconds)


SessionListener = Callable[[PlaybackSession], None]


class PlaybackController:
    """Owns the playback session and the one active audio producer."""

    def __init__(
        self,
        *,
        catalog: TrackCatalog,
        remote_source_factory: RemoteSourceFactory,
        audio_context_factory: AudioContextFactory,
        emit_event: Callable[[object], Awaitable[None]] | None = None,
        load_timeout_s: float = DEFAULT_LOAD_TIMEOUT_S,
        mute_affects_tone: bool = False,
        muted: bool = False,
        start_index: int = 0,
        progress_clock: ProgressClock | None = None,
    ) -> None:
        if load_timeout_s <= 0:
            raise ValueError("load_timeout_s must be > 0")
        if not catalog.contains_index(start_index):
            raise ValueError(f"start_index {start_index} is outside the catalog")
        self._catalog = catalog
        self._remote_source_factory = remote_source_factory
        self._audio_context_factory = audio_context_factory
        self._emit_event = emit_event
        self._load_timeout_s = load_timeout_s
        self._mute_affects_tone = mute_affects_tone
        self._clock = progress_clock or ProgressClock()
        self._session = PlaybackSession(current_track_index=start_index, muted=muted)
        self._generation = 0
        self._disposed = False
        self._remote: RemoteAudioSource | None = None
        self._tone: SynthesizedToneSource | None = None
        self._audio_context: AudioContext | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._watchdog: asyncio.Task[None] | None = None
        self._play_task: asyncio.Task[None] | None = None
        self._listeners: list[SessionListener] = []

    @property
    def catalog(self) -> TrackCatalog:
        return self._catalog

    @property
    def disposed(self) -> bool:
        return self._disposed

    def snapshot(self) -> PlaybackSession:
        return self._session

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a change listener; returns a callable that unsubscribes."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    async def mount(self) -> None:
        """Load the starting track without playing it."""
        self._ensure_alive()
        if self._generation:
            logger.debug("mount() ignored; session already started")
            return
        await self._begin_load(self._session.current_track_index, play_intent=False)

    async def select_track(self, index: int) -> bool:
        """Switch to `index` and play it; out-of-range indexes are ignored."""
        self._ensure_alive()
        if not self._catalog.contains_index(index):
            logger.warning(
                "Ignoring invalid track index %s (catalog has %d tracks)",
                index,
                len(self._catalog),
            )
            return False
        await self._begin_load(index, play_intent=True)
        return True

    async def next_track(self) -> None:
        self._ensure_alive()
        index = self._catalog.wrap_index(self._session.current_track_index + 1)
        await self._begin_load(index, play_intent=self._wants_playback())

    async def previous_track(self) -> None:
        self._ensure_alive()
        index = self._catalog.wrap_index(self._session.current_track_index - 1)
        await self._begin_load(index, play_intent=self._wants_playback())

    async def toggle_play(self) -> None:
        """Pause the active producer or resume it; never creates a new source."""
        self._ensure_alive()
        mode = self._session.mode
        if mode == "loading":
            self._session = replace(
                self._session, play_intent=not self._session.play_intent
            )
            await self._notify()
            return
        if mode in PLAYING_MODES:
            self._cancel_play_task()
            if mode == "playing_remote" and self._remote is not None:
                self._remote.pause()
            elif self._tone is not None:
                self._tone.stop()
            self._session = replace(
                self._session, mode="paused", resume_mode=mode, play_intent=False
            )
            logger.debug("Paused (%s)", mode, extra=self._log_fields())
            await self._notify()
            return
        if mode != "paused":
            logger.debug("toggle_play() ignored in %s; nothing to resume", mode)
            return
        target = self._session.resume_mode
        if target == "playing_remote" and self._remote is not None:
            self._session = replace(
                self._session, mode=target, resume_mode=None, play_intent=True
            )
            self._play_task = self._spawn(self._play_remote(self._generation))
        elif target in FALLBACK_MODES:
            self._start_tone()
            self._session = replace(
                self._session, mode=target, resume_mode=None, play_intent=True
            )
        else:
            logger.debug("toggle_play() found no source to resume")
            return
        logger.debug("Resumed (%s)", target, extra=self._log_fields())
        await self._notify()

    async def toggle_mute(self) -> None:
        self._ensure_alive()
        muted = not self._session.muted
        self._session = replace(self._session, muted=muted)
        if self._remote is not None:
            self._remote.set_muted(muted)
        if self._mute_affects_tone and self._tone is not None:
            self._tone.set_muted(muted)
        await self._notify()

    def dispose(self) -> None:
        """Release every audio resource; the controller is unusable afterwards."""
        if self._disposed:
            raise ControllerDisposedError("PlaybackController was already disposed")
        self._disposed = True
        self._teardown_sources()
        if self._audio_context is not None:
            self._audio_context.close()
            self._audio_context = None
        self._tone = None
        self._clock.reset()
        self._session = replace(
            self._session,
            mode="idle",
            elapsed_seconds=0.0,
            duration_seconds=0.0,
            play_intent=False,
            resume_mode=None,
            disposed=True,
        )
        logger.debug("Playback controller disposed")
        self._notify_listeners()

    async def _begin_load(self, index: int, *, play_intent: bool) -> None:
        # The previous producer is always released before a new one exists.
        self._teardown_sources()
        self._generation += 1
        generation = self._generation
        self._clock.reset()
        self._session = replace(
            self._session,
            current_track_index=index,
            mode="loading",
            elapsed_seconds=0.0,
            duration_seconds=0.0,
            last_error=None,
            generation=generation,
            play_intent=play_intent,
            resume_mode=None,
        )
        track = self._catalog[index]
        logger.debug(
            "Loading track %d (%s) generation=%d autoplay=%s",
            index,
            track.title,
            generation,
            play_intent,
            extra=self._log_fields(),
        )
        await self._notify()
        if generation != self._generation or self._disposed:
            return
        if not _is_valid_locator(track.source_uri):
            self._spawn(self._reject_locator(generation, track.source_uri))
            return
        source = self._remote_source_factory()
        source.set_event_handler(partial(self._handle_source_event, generation))
        source.set_muted(self._session.muted)
        self._remote = source
        self._spawn(self._load_remote(generation, source, track.source_uri))
        self._watchdog = asyncio.create_task(self._watch_load(generation))
        self._watchdog.add_done_callback(self._task_done)

    async def _load_remote(
        self, generation: int, source: RemoteAudioSource, uri: str
    ) -> None:
        try:
            await source.load(uri)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Remote load failed for %s: %s", uri, exc)
            await self._handle_source_event(
                generation, SourceError("network_or_decode", str(exc))
            )

    async def _play_remote(self, generation: int) -> None:
        source = self._remote
        if source is None or generation != self._generation:
            return
        if self._session.mode == "paused":
            logger.debug("Skipping play(); session was paused before it ran")
            return
        try:
            await source.play()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Remote play() failed: %s", exc)
            await self._handle_source_event(
                generation, SourceError("playback_rejected", str(exc))
            )

    async def _reject_locator(self, generation: int, uri: str) -> None:
        if generation != self._generation or self._disposed:
            return
        logger.warning("Track locator %r is empty or invalid", uri)
        await self._engage_fallback("invalid_locator", stalled=True)

    async def _watch_load(self, generation: int) -> None:
        await asyncio.sleep(self._load_timeout_s)
        if generation != self._generation or self._disposed:
            return
        if self._session.mode != "loading":
            return
        logger.warning(
            "Track %d produced no result within %.1fs; stalling",
            self._session.current_track_index,
            self._load_timeout_s,
            extra=self._log_fields(),
        )
        await self._engage_fallback("load_timeout", stalled=True)

    async def _handle_source_event(self, generation: int, event: SourceEvent) -> None:
        """Apply a source event unless it belongs to a superseded load."""
        if self._disposed or generation != self._generation or self._remote is None:
            logger.debug(
                "Discarding stale %s (generation=%d current=%d)",
                type(event).__name__,
                generation,
                self._generation,
            )
            return
        mode = self._session.mode
        if isinstance(event, MetadataReady):
            if self._clock.set_duration(event.duration_seconds):
                self._sync_progress()
                await self._notify()
        elif isinstance(event, TimeUpdate):
            publish = self._clock.update(event.elapsed_seconds)
            self._sync_progress()
            if publish:
                await self._notify()
        elif isinstance(event, CanPlay):
            if mode != "loading":
                return
            if self._session.play_intent:
                self._play_task = self._spawn(self._play_remote(generation))
                return
            self._cancel_watchdog()
            self._session = replace(
                self._session, mode="paused", resume_mode="playing_remote"
            )
            logger.debug("Track ready; waiting for play")
            await self._notify()
        elif isinstance(event, PlaybackStarted):
            if mode != "loading":
                return
            self._cancel_watchdog()
            if not self._session.play_intent:
                self._remote.pause()
                self._session = replace(
                    self._session, mode="paused", resume_mode="playing_remote"
                )
            else:
                self._session = replace(self._session, mode="playing_remote")
                logger.info(
                    "Playing remote track %d",
                    self._session.current_track_index,
                    extra=self._log_fields(),
                )
            await self._notify()
        elif isinstance(event, SourceError):
            logger.info(
                "Remote source error (%s): %s",
                event.kind,
                event.message,
                extra=self._log_fields(),
            )
            await self._engage_fallback(event.kind, stalled=False)

    async def _engage_fallback(self, kind: ErrorKind, *, stalled: bool) -> None:
        """Replace the remote producer with the tone, honoring play intent."""
        self._cancel_watchdog()
        if self._remote is not None:
            self._remote.dispose()
            self._remote = None
        self._clock.reset()
        fallback_mode: Mode = "stalled" if stalled else "playing_fallback"
        session = self._session
        wants_audio = session.mode in PLAYING_MODES or (
            session.mode == "loading" and session.play_intent
        )
        if wants_audio:
            self._start_tone()
            self._session = replace(
                session,
                mode=fallback_mode,
                resume_mode=None,
                last_error=kind,
                elapsed_seconds=0.0,
                duration_seconds=0.0,
            )
        else:
            self._session = replace(
                session,
                mode="paused",
                resume_mode=fallback_mode,
                last_error=kind,
                elapsed_seconds=0.0,
                duration_seconds=0.0,
            )
        logger.info(
            "Using calming tone for track %d (%s)",
            session.current_track_index,
            kind,
            extra=self._log_fields(),
        )
        await self._notify()

    def _start_tone(self) -> None:
        try:
            if self._tone is None:
                if self._audio_context is None:
                    self._audio_context = self._audio_context_factory()
                self._tone = SynthesizedToneSource(self._audio_context)
                if self._mute_affects_tone:
                    self._tone.set_muted(self._session.muted)
            self._tone.start()
        except Exception as exc:
            logger.error("Fallback tone unavailable: %s", exc)

    def _teardown_sources(self) -> None:
        self._cancel_watchdog()
        current = asyncio.current_task() if _loop_running() else None
        for task in list(self._tasks):
            if task is not current:
                task.cancel()
        self._tasks.clear()
        self._play_task = None
        if self._remote is not None:
            self._remote.dispose()
            self._remote = None
        if self._tone is not None:
            self._tone.stop()

    def _cancel_watchdog(self) -> None:
        watchdog, self._watchdog = self._watchdog, None
        if watchdog is None:
            return
        current = asyncio.current_task() if _loop_running() else None
        if watchdog is not current:
            watchdog.cancel()

    def _cancel_play_task(self) -> None:
        task, self._play_task = self._play_task, None
        if task is None or task.done():
            return
        current = asyncio.current_task() if _loop_running() else None
        if task is not current:
            task.cancel()

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task is self._play_task:
            self._play_task = None
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Playback task failed", exc_info=exc)

    def _wants_playback(self) -> bool:
        session = self._session
        if session.mode == "loading":
            return session.play_intent
        return session.mode in PLAYING_MODES

    def _log_fields(self) -> dict[str, object]:
        session = self._session
        return {
            "track_index": session.current_track_index,
            "generation": session.generation,
            "mode": session.mode,
        }

    def _sync_progress(self) -> None:
        self._session = replace(
            self._session,
            elapsed_seconds=self._clock.elapsed_seconds,
            duration_seconds=self._clock.duration_seconds,
        )

    def _ensure_alive(self) -> None:
        if self._disposed:
            raise ControllerDisposedError("PlaybackController is disposed")

    async def _notify(self) -> None:
        self._notify_listeners()
        if self._emit_event is not None:
            await self._emit_event(SessionChanged(self._session))

    def _notify_listeners(self) -> None:
        snapshot = self._session
        for listener in list(self._listeners):
            listener(snapshot)


def _is_valid_locator(uri: str) -> bool:
    """Locators need a scheme and a location (host or path)."""
    if not uri or not uri.strip():
        return False
    try:
        parts = urlsplit(uri.strip())
    except ValueError:
        return False
    return bool(parts.scheme) and bool(parts.netloc or parts.path)


def _loop_running() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True
