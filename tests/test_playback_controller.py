"""Tests for the playback controller state machine."""

from __future__ import annotations

import asyncio
import logging

import pytest

from meditation_player.catalog import Track, TrackCatalog
from meditation_player.events import SessionChanged
from meditation_player.services.audio_source import (
    CanPlay,
    MetadataReady,
    SourceError,
    TimeUpdate,
)
from meditation_player.services.fake_sources import (
    FakeAudioContext,
    FakeRemoteSource,
    FakeRemoteSourceFactory,
    ProducerLedger,
)
from meditation_player.services.playback_controller import (
    ControllerDisposedError,
    PlaybackController,
    PlaybackSession,
)
from meditation_player.services.progress_clock import ProgressClock
from meditation_player.services.tone_source import TONE_FREQUENCY_HZ, TONE_GAIN

CONTROLLER_LOGGER = "meditation_player.services.playback_controller"


def _run(coro):
    """Run async controller scenario from sync test functions."""
    return asyncio.run(coro)


async def _settle(rounds: int = 20) -> None:
    """Let spawned load/play tasks run to completion."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def _catalog(count: int = 3, uris: list[str] | None = None) -> TrackCatalog:
    uris = uris or [f"https://audio.example/track-{index}.mp3" for index in range(count)]
    return TrackCatalog(
        Track(
            title=f"Track {index}",
            category="Focus",
            display_duration="10:00",
            source_uri=uri,
        )
        for index, uri in enumerate(uris)
    )


def _controller(
    *,
    behaviors=None,
    default_behavior="ready",
    catalog: TrackCatalog | None = None,
    context: FakeAudioContext | None = None,
    **kwargs,
) -> tuple[PlaybackController, FakeRemoteSourceFactory, FakeAudioContext]:
    ledger = ProducerLedger()
    factory = FakeRemoteSourceFactory(
        behaviors=behaviors, default_behavior=default_behavior, ledger=ledger
    )
    context = context or FakeAudioContext(ledger=ledger)
    kwargs.setdefault("progress_clock", ProgressClock(min_interval_s=0))
    controller = PlaybackController(
        catalog=catalog or _catalog(),
        remote_source_factory=factory,
        audio_context_factory=lambda: context,
        **kwargs,
    )
    return controller, factory, context


def test_select_track_plays_remote_source() -> None:
    async def run() -> None:
        controller, factory, context = _controller()
        assert await controller.select_track(1) is True
        await _settle()
        session = controller.snapshot()
        assert session.mode == "playing_remote"
        assert session.current_track_index == 1
        assert session.duration_seconds == 600.0
        assert session.is_playing is True
        assert session.using_fallback is False
        assert factory.created[0].uri == "https://audio.example/track-1.mp3"
        assert factory.created[0].play_calls == 1
        assert context.oscillators == []
        controller.dispose()

    _run(run())


def test_mount_loads_without_playing_until_toggled() -> None:
    async def run() -> None:
        controller, factory, _context = _controller()
        await controller.mount()
        await _settle()
        session = controller.snapshot()
        assert session.mode == "paused"
        assert session.resume_mode == "playing_remote"
        assert factory.created[0].play_calls == 0

        await controller.toggle_play()
        assert controller.snapshot().mode == "playing_remote"
        await _settle()
        assert factory.created[0].play_calls == 1
        assert len(factory.created) == 1
        controller.dispose()

    _run(run())


def test_select_track_returns_in_loading_state() -> None:
    async def run() -> None:
        controller, _factory, _context = _controller()
        await controller.select_track(2)
        session = controller.snapshot()
        assert session.mode == "loading"
        assert session.elapsed_seconds == 0.0
        assert session.last_error is None
        assert session.play_intent is True
        controller.dispose()

    _run(run())


def test_switching_tracks_resets_progress_and_error() -> None:
    async def run() -> None:
        controller, factory, _context = _controller(default_behavior="manual")
        await controller.select_track(0)
        first = factory.created[0]
        await first.emit(MetadataReady(600.0))
        await first.emit(CanPlay())
        await _settle()
        await first.emit(TimeUpdate(42.0))
        assert controller.snapshot().elapsed_seconds == 42.0

        await controller.next_track()
        session = controller.snapshot()
        assert session.current_track_index == 1
        assert session.mode == "loading"
        assert session.elapsed_seconds == 0.0
        assert session.duration_seconds == 0.0
        assert session.last_error is None

        await factory.created[1].emit(SourceError("network_or_decode"))
        assert controller.snapshot().last_error == "network_or_decode"
        await controller.previous_track()
        session = controller.snapshot()
        assert session.current_track_index == 0
        assert session.mode == "loading"
        assert session.last_error is None

        await factory.created[2].emit(SourceError("network_or_decode"))
        await controller.select_track(2)
        session = controller.snapshot()
        assert session.current_track_index == 2
        assert session.mode == "loading"
        assert session.last_error is None
        controller.dispose()

    _run(run())


def test_late_events_from_superseded_load_are_discarded(caplog) -> None:
    async def run() -> None:
        controller, factory, _context = _controller(default_behavior="manual")
        await controller.select_track(0)
        await controller.select_track(1)
        stale = factory.created[0]
        assert stale.disposed is True

        await stale.emit(MetadataReady(300.0))
        await stale.emit(CanPlay())
        await stale.emit(SourceError("network_or_decode"))
        await _settle()

        session = controller.snapshot()
        assert session.current_track_index == 1
        assert session.mode == "loading"
        assert session.duration_seconds == 0.0
        assert session.last_error is None
        assert session.generation == 2
        assert stale.play_calls == 0
        controller.dispose()

    with caplog.at_level(logging.DEBUG, logger=CONTROLLER_LOGGER):
        _run(run())
    assert any("Discarding stale" in record.message for record in caplog.records)


def test_remote_error_engages_tone_once() -> None:
    async def run() -> None:
        controller, factory, context = _controller(behaviors=["error"])
        await controller.select_track(0)
        await _settle()
        session = controller.snapshot()
        assert session.mode == "playing_fallback"
        assert session.last_error == "network_or_decode"
        assert session.using_fallback is True
        assert factory.created[0].disposed is True
        assert len(context.oscillators) == 1
        oscillator = context.oscillators[0]
        assert oscillator.start_calls == 1
        assert oscillator.running is True
        assert oscillator.frequency_hz == TONE_FREQUENCY_HZ
        assert oscillator.gain == TONE_GAIN
        assert controller._tone is not None  # noqa: SLF001
        assert controller._tone.start_count == 1  # noqa: SLF001
        controller.dispose()

    _run(run())


def test_rejected_play_engages_tone() -> None:
    async def run() -> None:
        controller, factory, context = _controller(behaviors=["reject"])
        await controller.select_track(0)
        await _settle()
        session = controller.snapshot()
        assert session.mode == "playing_fallback"
        assert session.last_error == "playback_rejected"
        assert factory.created[0].play_calls == 1
        assert len(context.running_oscillators) == 1
        controller.dispose()

    _run(run())


def test_load_exception_is_treated_as_network_error() -> None:
    class _ExplodingSource(FakeRemoteSource):
        async def load(self, uri: str) -> None:
            raise OSError("connection reset")

    async def run() -> None:
        context = FakeAudioContext()
        controller = PlaybackController(
            catalog=_catalog(),
            remote_source_factory=_ExplodingSource,
            audio_context_factory=lambda: context,
        )
        await controller.select_track(0)
        await _settle()
        session = controller.snapshot()
        assert session.mode == "playing_fallback"
        assert session.last_error == "network_or_decode"
        assert len(context.running_oscillators) == 1
        controller.dispose()

    _run(run())


def test_load_timeout_stalls_into_tone() -> None:
    async def run() -> None:
        controller, factory, context = _controller(
            default_behavior="manual", load_timeout_s=0.05
        )
        await controller.select_track(0)
        await asyncio.sleep(0.15)
        session = controller.snapshot()
        assert session.mode == "stalled"
        assert session.last_error == "load_timeout"
        assert session.is_playing is True
        assert session.using_fallback is True
        assert factory.created[0].disposed is True
        assert len(context.running_oscillators) == 1

        await factory.created[0].emit(CanPlay())
        assert controller.snapshot().mode == "stalled"
        controller.dispose()

    _run(run())


def test_watchdog_failure_is_logged(caplog) -> None:
    async def emit_event(event: object) -> None:
        assert isinstance(event, SessionChanged)
        if event.session.mode == "stalled":
            raise RuntimeError("view refused update")

    async def run() -> None:
        controller, _factory, _context = _controller(
            default_behavior="manual", load_timeout_s=0.05, emit_event=emit_event
        )
        await controller.select_track(0)
        await asyncio.sleep(0.15)
        assert controller.snapshot().mode == "stalled"
        controller.dispose()

    with caplog.at_level(logging.ERROR, logger=CONTROLLER_LOGGER):
        _run(run())
    failures = [
        record for record in caplog.records if record.message == "Playback task failed"
    ]
    assert len(failures) == 1
    assert "view refused update" in str(failures[0].exc_info[1])


def test_load_timeout_without_play_intent_waits_for_play() -> None:
    async def run() -> None:
        controller, _factory, context = _controller(
            default_behavior="manual", load_timeout_s=0.05
        )
        await controller.mount()
        await asyncio.sleep(0.15)
        session = controller.snapshot()
        assert session.mode == "paused"
        assert session.resume_mode == "stalled"
        assert session.last_error == "load_timeout"
        assert context.oscillators == []

        await controller.toggle_play()
        assert controller.snapshot().mode == "stalled"
        assert len(context.running_oscillators) == 1
        controller.dispose()

    _run(run())


def test_invalid_locator_stalls_without_creating_source() -> None:
    async def run() -> None:
        controller, factory, context = _controller(
            catalog=_catalog(uris=["", "not a url", "https://audio.example/ok.mp3"])
        )
        await controller.select_track(0)
        await _settle()
        session = controller.snapshot()
        assert session.mode == "stalled"
        assert session.last_error == "invalid_locator"
        assert factory.created == []
        assert len(context.running_oscillators) == 1

        await controller.select_track(1)
        await _settle()
        assert controller.snapshot().last_error == "invalid_locator"
        assert factory.created == []
        assert len(context.running_oscillators) == 1
        controller.dispose()

    _run(run())


def test_next_and_previous_wrap_around_catalog() -> None:
    async def run() -> None:
        controller, _factory, _context = _controller(catalog=_catalog(count=4))
        for _ in range(4):
            await controller.next_track()
        assert controller.snapshot().current_track_index == 0
        await controller.previous_track()
        assert controller.snapshot().current_track_index == 3
        controller.dispose()

    _run(run())


def test_next_keeps_play_intent() -> None:
    async def run() -> None:
        controller, factory, _context = _controller()
        await controller.mount()
        await _settle()
        await controller.next_track()
        assert controller.snapshot().play_intent is False
        await _settle()
        assert controller.snapshot().mode == "paused"

        await controller.select_track(0)
        await _settle()
        await controller.next_track()
        assert controller.snapshot().play_intent is True
        await _settle()
        assert controller.snapshot().mode == "playing_remote"
        assert factory.created[-1].play_calls == 1
        controller.dispose()

    _run(run())


def test_invalid_index_is_ignored(caplog) -> None:
    async def run() -> None:
        controller, factory, _context = _controller()
        before = controller.snapshot()
        assert await controller.select_track(7) is False
        assert await controller.select_track(-1) is False
        assert controller.snapshot() == before
        assert factory.created == []
        controller.dispose()

    with caplog.at_level(logging.WARNING, logger=CONTROLLER_LOGGER):
        _run(run())
    assert any("invalid track index" in record.message for record in caplog.records)


def test_at_most_one_producer_is_ever_active() -> None:
    async def run() -> None:
        ledger = ProducerLedger()
        factory = FakeRemoteSourceFactory(
            behaviors=["ready", "error", "ready", "reject", "error", "ready"],
            ledger=ledger,
        )
        context = FakeAudioContext(ledger=ledger)
        controller = PlaybackController(
            catalog=_catalog(count=5),
            remote_source_factory=factory,
            audio_context_factory=lambda: context,
        )
        steps = [
            lambda: controller.select_track(0),
            lambda: controller.select_track(1),
            controller.toggle_play,
            controller.toggle_play,
            controller.next_track,
            controller.next_track,
            controller.previous_track,
            lambda: controller.select_track(4),
        ]
        for step in steps:
            await step()
            assert ledger.active <= 1
            await _settle()
            assert ledger.active <= 1
        assert ledger.peak == 1
        controller.dispose()
        assert ledger.active == 0

    _run(run())


def test_rapid_switches_keep_single_producer() -> None:
    async def run() -> None:
        ledger = ProducerLedger()
        factory = FakeRemoteSourceFactory(default_behavior="error", ledger=ledger)
        context = FakeAudioContext(ledger=ledger)
        controller = PlaybackController(
            catalog=_catalog(count=3),
            remote_source_factory=factory,
            audio_context_factory=lambda: context,
        )
        for index in (0, 1, 2, 0, 1):
            await controller.select_track(index)
            await asyncio.sleep(0)
        await _settle()
        assert ledger.peak == 1
        assert len(context.running_oscillators) == 1
        controller.dispose()

    _run(run())


def test_elapsed_is_clamped_to_duration() -> None:
    async def run() -> None:
        controller, factory, _context = _controller(default_behavior="manual")
        await controller.select_track(0)
        source = factory.created[0]
        await source.emit(MetadataReady(600.0))
        await source.emit(CanPlay())
        await _settle()
        await source.emit(TimeUpdate(999.0))
        session = controller.snapshot()
        assert session.elapsed_seconds == 600.0
        assert session.progress_percent == 100.0
        await source.emit(TimeUpdate(float("nan")))
        assert controller.snapshot().elapsed_seconds == 0.0
        controller.dispose()

    _run(run())


def test_toggle_play_while_loading_flips_intent() -> None:
    async def run() -> None:
        controller, factory, _context = _controller(default_behavior="manual")
        await controller.select_track(0)
        await controller.toggle_play()
        assert controller.snapshot().play_intent is False
        assert controller.snapshot().mode == "loading"

        await factory.created[0].emit(CanPlay())
        session = controller.snapshot()
        assert session.mode == "paused"
        assert session.resume_mode == "playing_remote"
        assert factory.created[0].play_calls == 0
        controller.dispose()

    _run(run())


def test_pause_and_resume_remote_reuses_source() -> None:
    async def run() -> None:
        controller, factory, _context = _controller()
        await controller.select_track(0)
        await _settle()
        await controller.toggle_play()
        session = controller.snapshot()
        assert session.mode == "paused"
        assert session.resume_mode == "playing_remote"
        assert factory.created[0].pause_calls == 1

        await controller.toggle_play()
        await _settle()
        assert controller.snapshot().mode == "playing_remote"
        assert len(factory.created) == 1
        assert factory.created[0].play_calls == 2
        controller.dispose()

    _run(run())


def test_pause_immediately_after_resume_keeps_source_silent() -> None:
    async def run() -> None:
        controller, factory, _context = _controller()
        await controller.select_track(0)
        await _settle()
        await controller.toggle_play()
        await _settle()
        source = factory.created[0]
        assert source.play_calls == 1

        await controller.toggle_play()
        await controller.toggle_play()
        await _settle()
        session = controller.snapshot()
        assert session.mode == "paused"
        assert session.resume_mode == "playing_remote"
        assert source.playing is False
        assert source.play_calls == 1

        await controller.toggle_play()
        await _settle()
        assert controller.snapshot().mode == "playing_remote"
        assert source.playing is True
        controller.dispose()

    _run(run())


def test_queued_play_is_skipped_once_paused() -> None:
    async def run() -> None:
        controller, factory, _context = _controller()
        await controller.mount()
        await _settle()
        generation = controller.snapshot().generation
        assert controller.snapshot().mode == "paused"

        await controller._play_remote(generation)  # noqa: SLF001
        assert factory.created[0].play_calls == 0
        assert factory.created[0].playing is False
        controller.dispose()

    _run(run())


def test_pause_and_resume_fallback_restarts_tone() -> None:
    async def run() -> None:
        controller, _factory, context = _controller(behaviors=["error"])
        await controller.select_track(0)
        await _settle()
        await controller.toggle_play()
        assert controller.snapshot().mode == "paused"
        assert context.running_oscillators == []

        await controller.toggle_play()
        session = controller.snapshot()
        assert session.mode == "playing_fallback"
        assert session.last_error == "network_or_decode"
        assert len(context.running_oscillators) == 1
        controller.dispose()

    _run(run())


def test_mid_stream_error_switches_to_tone() -> None:
    async def run() -> None:
        controller, factory, context = _controller()
        await controller.select_track(0)
        await _settle()
        await factory.created[0].emit(SourceError("network_or_decode", "dropped"))
        session = controller.snapshot()
        assert session.mode == "playing_fallback"
        assert session.elapsed_seconds == 0.0
        assert factory.created[0].disposed is True
        assert len(context.running_oscillators) == 1
        controller.dispose()

    _run(run())


def test_error_while_paused_defers_tone_until_play() -> None:
    async def run() -> None:
        controller, factory, context = _controller()
        await controller.select_track(0)
        await _settle()
        await controller.toggle_play()
        await factory.created[0].emit(SourceError("network_or_decode"))
        session = controller.snapshot()
        assert session.mode == "paused"
        assert session.resume_mode == "playing_fallback"
        assert session.using_fallback is True
        assert context.oscillators == []

        await controller.toggle_play()
        assert controller.snapshot().mode == "playing_fallback"
        assert len(context.running_oscillators) == 1
        controller.dispose()

    _run(run())


def test_mute_applies_to_remote_and_carries_to_next_source() -> None:
    async def run() -> None:
        controller, factory, _context = _controller()
        await controller.select_track(0)
        await _settle()
        await controller.toggle_mute()
        assert controller.snapshot().muted is True
        assert factory.created[0].muted is True

        await controller.next_track()
        assert factory.created[1].muted is True
        controller.dispose()

    _run(run())


def test_mute_leaves_tone_audible_by_default() -> None:
    async def run() -> None:
        controller, _factory, context = _controller(behaviors=["error"])
        await controller.select_track(0)
        await _settle()
        await controller.toggle_mute()
        assert controller.snapshot().muted is True
        assert context.oscillators[0].gain == TONE_GAIN
        controller.dispose()

    _run(run())


def test_mute_silences_tone_when_configured() -> None:
    async def run() -> None:
        controller, _factory, context = _controller(
            behaviors=["error"], mute_affects_tone=True, muted=True
        )
        await controller.select_track(0)
        await _settle()
        assert context.oscillators[0].gain == 0.0
        await controller.toggle_mute()
        assert context.oscillators[0].gain == TONE_GAIN
        controller.dispose()

    _run(run())


def test_missing_audio_device_keeps_fallback_mode(caplog) -> None:
    async def run() -> None:
        controller, _factory, _context = _controller(
            behaviors=["error"], context=FakeAudioContext(fail=True)
        )
        await controller.select_track(0)
        await _settle()
        session = controller.snapshot()
        assert session.mode == "playing_fallback"
        assert session.last_error == "network_or_decode"
        controller.dispose()

    with caplog.at_level(logging.ERROR, logger=CONTROLLER_LOGGER):
        _run(run())
    assert any("Fallback tone unavailable" in record.message for record in caplog.records)


def test_dispose_releases_everything_once() -> None:
    async def run() -> None:
        ledger = ProducerLedger()
        factory = FakeRemoteSourceFactory(behaviors=["error"], ledger=ledger)
        context = FakeAudioContext(ledger=ledger)
        controller = PlaybackController(
            catalog=_catalog(),
            remote_source_factory=factory,
            audio_context_factory=lambda: context,
        )
        seen: list[PlaybackSession] = []
        controller.subscribe(seen.append)
        await controller.select_track(0)
        await _settle()
        assert ledger.active == 1

        controller.dispose()
        assert ledger.active == 0
        assert context.close_calls == 1
        assert controller.disposed is True
        session = controller.snapshot()
        assert session.disposed is True
        assert session.mode == "idle"
        assert seen[-1] == session

        with pytest.raises(ControllerDisposedError):
            controller.dispose()
        with pytest.raises(ControllerDisposedError):
            await controller.select_track(1)
        with pytest.raises(ControllerDisposedError):
            await controller.toggle_play()
        assert context.close_calls == 1

    _run(run())


def test_disposed_error_is_runtime_error() -> None:
    assert issubclass(ControllerDisposedError, RuntimeError)


def test_subscribers_and_emit_event_receive_snapshots() -> None:
    events: list[object] = []

    async def emit_event(event: object) -> None:
        events.append(event)

    async def run() -> None:
        controller, _factory, _context = _controller(emit_event=emit_event)
        seen: list[PlaybackSession] = []
        unsubscribe = controller.subscribe(seen.append)
        await controller.select_track(0)
        await _settle()
        assert seen[0].mode == "loading"
        assert seen[-1].mode == "playing_remote"
        assert all(isinstance(event, SessionChanged) for event in events)
        assert events[-1].session == seen[-1]

        count = len(seen)
        unsubscribe()
        await controller.toggle_mute()
        assert len(seen) == count
        controller.dispose()

    _run(run())


def test_constructor_validates_arguments() -> None:
    factory = FakeRemoteSourceFactory()
    with pytest.raises(ValueError):
        PlaybackController(
            catalog=_catalog(),
            remote_source_factory=factory,
            audio_context_factory=FakeAudioContext,
            load_timeout_s=0,
        )
    with pytest.raises(ValueError):
        PlaybackController(
            catalog=_catalog(count=2),
            remote_source_factory=factory,
            audio_context_factory=FakeAudioContext,
            start_index=5,
        )


def test_session_fallback_flags() -> None:
    assert PlaybackSession(mode="stalled").using_fallback is True
    assert PlaybackSession(mode="paused", resume_mode="stalled").using_fallback is True
    assert (
        PlaybackSession(mode="paused", resume_mode="playing_remote").using_fallback
        is False
    )
    assert PlaybackSession(mode="loading").is_playing is False
    assert (
        PlaybackSession(elapsed_seconds=30.0, duration_seconds=120.0).progress_percent
        == 25.0
    )
