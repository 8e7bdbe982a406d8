"""Locally synthesized fallback tone."""

from __future__ import annotations

import logging

from .audio_source import AudioContext, Oscillator

logger = logging.getLogger(__name__)

TONE_FREQUENCY_HZ = 432.0
TONE_GAIN = 0.1


class SynthesizedToneSource:
    """Continuous low-amplitude sine tone with an explicit lifecycle.

    At most one oscillator exists at a time: `start()` on a running source
    tears the old oscillator down before creating a new one, so repeated
    starts never layer tones on top of each other.
    """

    def __init__(self, context: AudioContext) -> None:
        self._context = context
        self._oscillator: Oscillator | None = None
        self._muted = False
        self.start_count = 0

    @property
    def active(self) -> bool:
        return self._oscillator is not None

    @property
    def muted(self) -> bool:
        return self._muted

    def start(self) -> None:
        if self._oscillator is not None:
            self._release()
        oscillator = self._context.create_oscillator(
            frequency_hz=TONE_FREQUENCY_HZ, gain=self._effective_gain()
        )
        oscillator.start()
        self._oscillator = oscillator
        self.start_count += 1
        logger.debug("Fallback tone started")

    def stop(self) -> None:
        if self._oscillator is None:
            return
        self._release()
        logger.debug("Fallback tone stopped")

    def dispose(self) -> None:
        self.stop()

    def set_muted(self, muted: bool) -> None:
        self._muted = muted
        if self._oscillator is not None:
            self._oscillator.set_gain(self._effective_gain())

    def _effective_gain(self) -> float:
        return 0.0 if self._muted else TONE_GAIN

    def _release(self) -> None:
        oscillator, self._oscillator = self._oscillator, None
        if oscillator is not None:
            oscillator.stop()
