"""Remote audio source using python-vlc."""

from __future__ import annotations

import asyncio
import logging
import queue
import threading
from collections.abc import Coroutine
from dataclasses import dataclass, field
from typing import Any, cast

from .audio_source import (
    CanPlay,
    MetadataReady,
    PlaybackStarted,
    SourceError,
    SourceEvent,
    SourceEventHandler,
    TimeUpdate,
)

logger = logging.getLogger(__name__)

# libVLC replays the input this many times; effectively loops the track.
LOOP_REPEAT_COUNT = 65535


@dataclass
class _Command:
    name: str
    args: tuple[Any, ...]
    future: asyncio.Future[Any] | None


@dataclass
class _WorkerState:
    parse_flag: Any = None
    media: Any = None
    parsing: bool = False
    awaiting_start: bool = False
    last_state: str = "nothingspecial"
    last_pos_ms: int = -1
    last_length_ms: int = -1
    events: list[SourceEvent] = field(default_factory=list)


class VLCRemoteSource:
    """One load attempt served by a dedicated VLC thread.

    The thread owns the libVLC instance, media and player. Commands are queued
    from the event loop; events travel back with `run_coroutine_threadsafe`.
    `dispose()` only signals the thread, which stops and releases everything
    on its way out.
    """

    def __init__(
        self, *, poll_interval_ms: int = 250, parse_timeout_ms: int = 8000
    ) -> None:
        self._poll_interval = poll_interval_ms / 1000
        self._parse_timeout_ms = parse_timeout_ms
        self._handler: SourceEventHandler | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: queue.Queue[_Command] = queue.Queue()
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._muted = False
        self._disposed = False

    @property
    def active(self) -> bool:
        return self._thread is not None and not self._disposed

    def set_event_handler(self, handler: SourceEventHandler) -> None:
        self._handler = handler

    async def load(self, uri: str) -> None:
        if self._disposed:
            return
        await self._start_thread()
        await self._submit("load", uri)

    async def play(self) -> None:
        if not self.active:
            return
        await self._submit("play")

    def pause(self) -> None:
        self._post("pause")

    def set_muted(self, muted: bool) -> None:
        self._muted = muted
        self._post("set_muted", muted)

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self._stop_event.set()
        self._queue.put(_Command("wake", (), None))

    async def _start_thread(self) -> None:
        if self._thread is not None:
            return
        self._loop = asyncio.get_running_loop()
        ready_future: asyncio.Future[None] = self._loop.create_future()
        self._thread = threading.Thread(
            target=self._thread_main,
            args=(ready_future,),
            name="VLCRemoteSourceThread",
            daemon=True,
        )
        self._thread.start()
        await ready_future

    async def _submit(self, name: str, *args: Any) -> Any:
        if self._loop is None or self._thread is None:
            raise RuntimeError("VLC source not started.")
        future: asyncio.Future[Any] = self._loop.create_future()
        self._queue.put(_Command(name, args, future))
        return await future

    def _post(self, name: str, *args: Any) -> None:
        if self._thread is None or self._disposed:
            return
        self._queue.put(_Command(name, args, None))

    def _thread_main(self, ready_future: asyncio.Future[None]) -> None:
        try:
            import vlc

            instance = vlc.Instance("--no-video", "--quiet")
            player = instance.media_player_new()
        except Exception as exc:  # pragma: no cover - depends on VLC install
            logger.warning("libVLC unavailable: %s", exc)
            self._notify_future_exception(
                ready_future,
                RuntimeError(
                    "VLC backend unavailable. Ensure VLC/libVLC is installed."
                ),
            )
            return

        self._notify_future_result(ready_future, None)
        worker = _WorkerState(parse_flag=vlc.MediaParseFlag.network)
        try:
            while not self._stop_event.is_set():
                try:
                    cmd = self._queue.get(timeout=self._poll_interval)
                except queue.Empty:
                    cmd = None

                if cmd is not None and cmd.name != "wake":
                    try:
                        result = self._handle_command(cmd, instance, player, worker)
                        self._notify_future_result(cmd.future, result)
                    except Exception as exc:  # pragma: no cover - backend safety net
                        self._notify_future_exception(cmd.future, exc)
                        self._emit_event(SourceError("network_or_decode", str(exc)))

                if self._stop_event.is_set():
                    break
                self._poll(player, worker)
                for event in worker.events:
                    self._emit_event(event)
                worker.events.clear()
        finally:
            player.stop()
            player.release()
            if worker.media is not None:
                worker.media.release()
            instance.release()
            self._fail_pending_commands()
            logger.debug("VLC source released")

    def _fail_pending_commands(self) -> None:
        while True:
            try:
                cmd = self._queue.get_nowait()
            except queue.Empty:
                return
            self._notify_future_exception(
                cmd.future, RuntimeError("VLC source disposed.")
            )

    def _handle_command(
        self, cmd: _Command, instance: Any, player: Any, worker: _WorkerState
    ) -> Any:
        name = cmd.name
        if name == "load":
            (uri,) = cmd.args
            media = instance.media_new(uri)
            media.add_option(f"input-repeat={LOOP_REPEAT_COUNT}")
            player.set_media(media)
            player.audio_set_mute(self._muted)
            worker.media = media
            if media.parse_with_options(worker.parse_flag, self._parse_timeout_ms):
                worker.events.append(
                    SourceError("network_or_decode", f"could not request {uri}")
                )
                return None
            worker.parsing = True
            return None
        if name == "play":
            if player.play() == -1:
                worker.events.append(
                    SourceError("playback_rejected", "libVLC refused to play")
                )
                return None
            worker.awaiting_start = True
            return None
        if name == "pause":
            player.set_pause(1)
            return None
        if name == "set_muted":
            (muted,) = cmd.args
            player.audio_set_mute(bool(muted))
            return None
        raise ValueError(f"Unknown command {name}")

    def _poll(self, player: Any, worker: _WorkerState) -> None:
        """Translate libVLC parse/player state into source events."""
        if worker.parsing and worker.media is not None:
            status = _enum_name(worker.media.get_parsed_status())
            if status == "done":
                worker.parsing = False
                length_ms = worker.media.get_duration()
                worker.events.append(MetadataReady(_ms_to_seconds(length_ms)))
                worker.events.append(CanPlay())
            elif status in {"failed", "timeout"}:
                worker.parsing = False
                worker.events.append(
                    SourceError("network_or_decode", f"media parse {status}")
                )

        state = _enum_name(player.get_state())
        if state != worker.last_state:
            worker.last_state = state
            if state == "error":
                worker.awaiting_start = False
                worker.events.append(
                    SourceError("network_or_decode", "libVLC reported an error")
                )
            elif state == "playing" and worker.awaiting_start:
                worker.awaiting_start = False
                worker.events.append(PlaybackStarted())

        if state == "playing":
            length_ms = player.get_length()
            if length_ms > 0 and length_ms != worker.last_length_ms:
                worker.last_length_ms = length_ms
                worker.events.append(MetadataReady(_ms_to_seconds(length_ms)))
            pos_ms = player.get_time()
            if pos_ms >= 0 and pos_ms != worker.last_pos_ms:
                worker.last_pos_ms = pos_ms
                worker.events.append(TimeUpdate(_ms_to_seconds(pos_ms)))

    def _emit_event(self, event: SourceEvent) -> None:
        if self._handler is None or self._loop is None:
            return
        coro = self._handler(event)
        asyncio.run_coroutine_threadsafe(
            cast(Coroutine[Any, Any, None], coro), self._loop
        )

    def _notify_future_result(
        self, future: asyncio.Future[Any] | None, value: Any
    ) -> None:
        if future is None or self._loop is None:
            return
        self._loop.call_soon_threadsafe(_resolve_future_result, future, value)

    def _notify_future_exception(
        self, future: asyncio.Future[Any] | None, exc: Exception
    ) -> None:
        if future is None or self._loop is None:
            return
        self._loop.call_soon_threadsafe(_resolve_future_exception, future, exc)


def _resolve_future_result(future: asyncio.Future[Any], value: Any) -> None:
    if not future.done():
        future.set_result(value)


def _resolve_future_exception(future: asyncio.Future[Any], exc: Exception) -> None:
    if not future.done():
        future.set_exception(exc)


def _enum_name(value: Any) -> str:
    """Lower-case member name of a python-vlc enum ("State.Playing" -> "playing")."""
    return str(value).rsplit(".", 1)[-1].lower()


def _ms_to_seconds(value: int) -> float:
    return value / 1000 if value > 0 else 0.0
