"""Audio output context backed by sounddevice/PortAudio.

The context is created lazily by the controller the first time the fallback
tone is needed and closed when the controller is disposed. Each oscillator
owns one PortAudio output stream that renders a phase-continuous sine wave.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

import numpy as np

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_RATE = 44_100
DEFAULT_BLOCKSIZE = 1024
TWO_PI = 2.0 * np.pi


def sine_block(
    phase: float,
    *,
    frequency_hz: float,
    sample_rate: int,
    frames: int,
    gain: float,
) -> tuple[np.ndarray, float]:
    """Render `frames` samples of a sine wave starting at `phase`.

    Returns the float32 samples and the phase to continue from.
    """
    increment = TWO_PI * frequency_hz / sample_rate
    phases = phase + increment * np.arange(frames, dtype=np.float64)
    samples = (np.sin(phases) * gain).astype(np.float32)
    next_phase = float((phase + increment * frames) % TWO_PI)
    return samples, next_phase


class SoundDeviceOscillator:
    """One sine tone on its own PortAudio output stream."""

    def __init__(
        self,
        *,
        sample_rate: int,
        frequency_hz: float,
        gain: float,
        blocksize: int = DEFAULT_BLOCKSIZE,
        device: int | str | None = None,
    ) -> None:
        self._sample_rate = sample_rate
        self._frequency_hz = frequency_hz
        self._gain = gain
        self._blocksize = blocksize
        self._device = device
        self._phase = 0.0
        self._lock = threading.Lock()
        self._stream: Any = None

    @property
    def running(self) -> bool:
        return self._stream is not None

    def start(self) -> None:
        if self._stream is not None:
            return
        import sounddevice as sd

        stream = sd.OutputStream(
            samplerate=self._sample_rate,
            blocksize=self._blocksize,
            channels=1,
            dtype="float32",
            device=self._device,
            callback=self._callback,
        )
        try:
            stream.start()
        except Exception:
            stream.close()
            raise
        self._stream = stream
        logger.debug(
            "Oscillator started at %.1f Hz (sample_rate=%d)",
            self._frequency_hz,
            self._sample_rate,
        )

    def stop(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
        finally:
            stream.close()
        logger.debug("Oscillator stopped")

    def set_gain(self, gain: float) -> None:
        with self._lock:
            self._gain = max(0.0, min(float(gain), 1.0))

    def _callback(self, outdata: np.ndarray, frames: int, time_info, status) -> None:
        if status:
            logger.debug("Tone stream status: %s", status)
        with self._lock:
            gain = self._gain
            samples, self._phase = sine_block(
                self._phase,
                frequency_hz=self._frequency_hz,
                sample_rate=self._sample_rate,
                frames=frames,
                gain=gain,
            )
        outdata[:, 0] = samples


class SoundDeviceAudioContext:
    """Lazily configured output device shared by all oscillators."""

    def __init__(
        self,
        *,
        sample_rate: int | None = None,
        blocksize: int = DEFAULT_BLOCKSIZE,
        device: int | str | None = None,
    ) -> None:
        self._sample_rate = sample_rate
        self._blocksize = blocksize
        self._device = device
        self._closed = False
        self._oscillators: list[SoundDeviceOscillator] = []

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def sample_rate(self) -> int:
        if self._sample_rate is None:
            self._sample_rate = _default_output_rate(self._device)
        return self._sample_rate

    def create_oscillator(
        self, *, frequency_hz: float, gain: float
    ) -> SoundDeviceOscillator:
        if self._closed:
            raise RuntimeError("Audio context is closed.")
        # Drop references to oscillators that have already been stopped.
        self._oscillators = [osc for osc in self._oscillators if osc.running]
        oscillator = SoundDeviceOscillator(
            sample_rate=self.sample_rate,
            frequency_hz=frequency_hz,
            gain=gain,
            blocksize=self._blocksize,
            device=self._device,
        )
        self._oscillators.append(oscillator)
        return oscillator

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        oscillators, self._oscillators = self._oscillators, []
        for oscillator in oscillators:
            try:
                oscillator.stop()
            except Exception as exc:  # pragma: no cover - PortAudio teardown
                logger.warning("Failed to stop oscillator on close: %s", exc)
        logger.debug("Audio context closed")


def _default_output_rate(device: int | str | None) -> int:
    """Ask PortAudio for the output device's preferred rate."""
    try:
        import sounddevice as sd

        info = sd.query_devices(device, "output")
        rate = int(info["default_samplerate"])
    except Exception as exc:
        logger.warning(
            "Could not query output device; using %d Hz: %s",
            DEFAULT_SAMPLE_RATE,
            exc,
        )
        return DEFAULT_SAMPLE_RATE
    return rate if rate > 0 else DEFAULT_SAMPLE_RATE
