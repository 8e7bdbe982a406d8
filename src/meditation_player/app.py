"""Textual TUI app for meditation-player."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.timer import Timer
from textual.widgets import Footer, Header

from . import __version__
from .catalog import load_catalog_with_notice
from .doctor import probe_vlc, render_report, run_doctor
from .events import SessionChanged, TrackRowSelected
from .logging_utils import setup_logging
from .paths import catalog_path, log_dir, settings_path
from .quotes import QuoteRotator
from .runtime_config import (
    SOURCE_BACKENDS,
    clamp_load_timeout,
    resolve_backend_name,
    resolve_log_level,
)
from .services.audio_context import SoundDeviceAudioContext
from .services.audio_source import AudioContextFactory, RemoteSourceFactory
from .services.fake_sources import FakeAudioContext, FakeRemoteSourceFactory
from .services.playback_controller import PlaybackController, PlaybackSession
from .services.vlc_source import VLCRemoteSource
from .settings_store import AppSettings, load_settings_with_notice, save_settings
from .ui.modals.notice import NoticeModal
from .ui.now_playing import NowPlayingPane
from .ui.track_list import TrackListPane
from .ui.transport_controls import TransportAction, TransportControls
from .utils.async_utils import run_blocking

logger = logging.getLogger(__name__)
FAKE_TICK_INTERVAL_MS = 250


class MeditationApp(App):
    TITLE = "meditation-player"
    CSS = """
    Screen {
        layout: vertical;
    }

    #main {
        height: 1fr;
    }

    #track-list-pane {
        width: 1fr;
        min-width: 40%;
        border: solid white;
        padding: 0 1;
    }

    #right-pane {
        width: 1fr;
    }

    #now-playing-pane {
        border: solid white;
        height: 1fr;
    }

    #transport-controls {
        height: 3;
        border: solid white;
        padding: 0 1;
    }

    ModalScreen {
        align: center middle;
    }

    #modal-body {
        padding: 1 2;
        border: solid white;
        width: 60%;
        height: auto;
    }
    """
    BINDINGS = [
        ("escape", "dismiss_modal", "Dismiss"),
        ("space", "play_pause", "Play/Pause"),
        ("n", "next_track", "Next"),
        ("p", "previous_track", "Previous"),
        ("m", "toggle_mute", "Mute"),
        ("q", "quit", "Quit"),
    ] + [
        Binding(str(number), f"select_number({number})", f"Track {number}", show=False)
        for number in range(1, 10)
    ]

    def __init__(
        self,
        *,
        auto_init: bool = True,
        backend_name: str | None = None,
        catalog_file: Path | None = None,
        load_timeout_s: float | None = None,
        remote_source_factory: RemoteSourceFactory | None = None,
        audio_context_factory: AudioContextFactory | None = None,
    ) -> None:
        super().__init__()
        self.settings = AppSettings()
        self.controller: PlaybackController | None = None
        self.session = PlaybackSession()
        self.quotes = QuoteRotator()
        self.startup_failed = False
        self._auto_init = auto_init
        self._backend_name = backend_name
        self._catalog_file = catalog_file
        self._load_timeout_s = load_timeout_s
        self._remote_source_factory = remote_source_factory
        self._audio_context_factory = audio_context_factory
        self._quote_timer: Timer | None = None
        self._init_task: asyncio.Task[None] | None = None
        self._track_list = TrackListPane(id="track-list-pane")
        self._now_playing = NowPlayingPane(id="now-playing-pane")
        self._transport = TransportControls(id="transport-controls")

    def compose(self) -> ComposeResult:
        yield Header()
        yield Horizontal(
            self._track_list,
            Vertical(
                self._now_playing,
                self._transport,
                id="right-pane",
            ),
            id="main",
        )
        yield Footer()

    def on_mount(self) -> None:
        self._now_playing.set_quote(self.quotes.current)
        self._quote_timer = self.set_interval(
            self.quotes.interval_s, self._advance_quote
        )
        if self._auto_init:
            self._init_task = asyncio.create_task(self._initialize())

    async def _initialize(self) -> None:
        notices: list[str] = []
        try:
            settings, settings_notice = await run_blocking(
                load_settings_with_notice, settings_path()
            )
            if settings_notice:
                notices.append(settings_notice)
            catalog, catalog_notice = await run_blocking(
                load_catalog_with_notice, self._catalog_file or catalog_path()
            )
            if catalog_notice:
                notices.append(catalog_notice)
            backend_name = resolve_backend_name(
                self._backend_name, settings.source_backend
            )
            if backend_name == "vlc" and self._remote_source_factory is None:
                check = await run_blocking(probe_vlc, required=True)
                if check.status != "ok":
                    logger.warning(
                        "VLC backend unavailable (%s); using fake backend",
                        check.detail,
                    )
                    backend_name = "fake"
                    notices.append(
                        "VLC backend unavailable; using fake backend.\n"
                        "Likely cause: VLC/libVLC runtime is not available.\n"
                        "Next step: install VLC/libVLC, then restart with --backend vlc."
                    )
            load_timeout_s = clamp_load_timeout(
                self._load_timeout_s
                if self._load_timeout_s is not None
                else settings.load_timeout_s
            )
            self.settings = replace(settings, source_backend=backend_name)
            logger.info(
                "Source backend selected: %s (load timeout %.1fs)",
                backend_name,
                load_timeout_s,
            )
            self.controller = PlaybackController(
                catalog=catalog,
                remote_source_factory=self._remote_source_factory
                or _build_source_factory(backend_name),
                audio_context_factory=self._audio_context_factory
                or _build_audio_context_factory(backend_name),
                emit_event=self._handle_controller_event,
                load_timeout_s=load_timeout_s,
                mute_affects_tone=settings.mute_affects_tone,
                muted=settings.muted,
            )
            track_list = self._track_list
            await track_list.set_catalog(catalog)
            self._render_session(self.controller.snapshot())
            if track_list.rows:
                track_list.rows[0].focus()
            await self.controller.mount()
        except Exception as exc:
            logger.exception("Failed to initialize app: %s", exc)
            self.startup_failed = True
            notices.append(
                "Failed to initialize the player.\n"
                "Likely cause: settings/catalog/audio startup failure.\n"
                "Next step: verify file permissions/paths and review the log file."
            )
        for notice in notices:
            await self.push_screen(NoticeModal(notice))

    async def on_unmount(self) -> None:
        if self._quote_timer is not None:
            self._quote_timer.stop()
            self._quote_timer = None
        if self._init_task is not None and not self._init_task.done():
            self._init_task.cancel()
        controller = self.controller
        if controller is None or controller.disposed:
            return
        muted = controller.snapshot().muted
        controller.dispose()
        await self._persist_settings(muted=muted)

    def action_dismiss_modal(self) -> None:
        if isinstance(self.screen, ModalScreen):
            self.pop_screen()

    async def action_play_pause(self) -> None:
        if self.controller is None:
            return
        await self.controller.toggle_play()

    async def action_next_track(self) -> None:
        if self.controller is None:
            return
        await self.controller.next_track()

    async def action_previous_track(self) -> None:
        if self.controller is None:
            return
        await self.controller.previous_track()

    async def action_toggle_mute(self) -> None:
        if self.controller is None:
            return
        await self.controller.toggle_mute()

    async def action_select_number(self, number: int) -> None:
        if self.controller is None:
            return
        if not await self.controller.select_track(number - 1):
            self.notify(f"No track {number} in this playlist.", severity="warning")

    async def action_quit(self) -> None:
        self.exit()

    async def on_track_row_selected(self, event: TrackRowSelected) -> None:
        event.stop()
        if self.controller is None:
            return
        await self.controller.select_track(event.index)

    async def on_transport_action(self, event: TransportAction) -> None:
        event.stop()
        if event.action == "prev":
            await self.action_previous_track()
        elif event.action == "toggle_play":
            await self.action_play_pause()
        elif event.action == "next":
            await self.action_next_track()
        elif event.action == "mute":
            await self.action_toggle_mute()

    async def _handle_controller_event(self, event: object) -> None:
        if isinstance(event, SessionChanged):
            self._render_session(event.session)

    def _render_session(self, session: PlaybackSession) -> None:
        self.session = session
        if self.controller is None:
            return
        track = self.controller.catalog[session.current_track_index]
        self._now_playing.update_from_session(session, track)
        self._track_list.update_from_session(session)
        self._transport.update_from_session(session)

    def _advance_quote(self) -> None:
        self._now_playing.set_quote(self.quotes.advance())

    async def _persist_settings(self, *, muted: bool) -> None:
        self.settings = replace(self.settings, muted=muted)
        try:
            await run_blocking(save_settings, settings_path(), self.settings)
        except OSError as exc:
            logger.warning("Failed to save settings: %s", exc)


def _build_source_factory(name: str) -> RemoteSourceFactory:
    if name == "vlc":
        return VLCRemoteSource
    return FakeRemoteSourceFactory(tick_interval_ms=FAKE_TICK_INTERVAL_MS)


def _build_audio_context_factory(name: str) -> AudioContextFactory:
    if name == "vlc":
        return SoundDeviceAudioContext
    return FakeAudioContext


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="meditation-player",
        description="Guided meditation player with a calming-tone fallback.",
    )
    parser.add_argument(
        "command",
        nargs="?",
        choices=("run", "doctor"),
        default="run",
        help="Start the player (default) or check the audio environment.",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument(
        "--quiet", action="store_true", help="Only show warnings and errors"
    )
    parser.add_argument("--log-file", help="Write logs to a file path")
    parser.add_argument(
        "--backend",
        choices=SOURCE_BACKENDS,
        help="Track source backend to use (fake or vlc).",
    )
    parser.add_argument("--catalog", help="Path to a JSON track catalog.")
    parser.add_argument(
        "--load-timeout",
        type=float,
        dest="load_timeout",
        help="Seconds to wait for a track before switching to the calming tone.",
    )
    return parser


def main() -> int:
    parser = build_parser()
    args = parser.parse_args()
    try:
        level = resolve_log_level(verbose=args.verbose, quiet=args.quiet)
        if args.command == "doctor":
            setup_logging(
                log_dir=log_dir(),
                level=level,
                log_file=Path(args.log_file) if args.log_file else None,
            )
            report = run_doctor(resolve_backend_name(args.backend, None))
            print(render_report(report))
            return report.exit_code
        setup_logging(
            log_dir=log_dir(),
            level=level,
            log_file=Path(args.log_file) if args.log_file else None,
            console=False,
        )
        logging.getLogger(__name__).info("Starting meditation-player TUI")
        app = MeditationApp(
            backend_name=args.backend,
            catalog_file=Path(args.catalog) if args.catalog else None,
            load_timeout_s=args.load_timeout,
        )
        app.run()
        return 1 if app.startup_failed else 0
    except Exception as exc:  # pragma: no cover - top-level safety net
        logging.getLogger(__name__).exception("Fatal startup error: %s", exc)
        print(
            "Startup failed. Verify audio/settings/log paths and re-run with --verbose.",
            file=sys.stderr,
        )
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
