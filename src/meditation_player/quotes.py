"""Mindfulness quotes shown beside the player."""

from __future__ import annotations

QUOTE_ROTATION_INTERVAL_S = 6.0

QUOTES: tuple[str, ...] = (
    "The present moment is filled with joy and happiness. "
    "If you are attentive, you will see it.",
    "Meditation is not about stopping thoughts, "
    "but recognizing that we are more than our thoughts.",
    "Peace comes from within. Do not seek it without.",
    "In the midst of movement and chaos, keep stillness inside of you.",
    "The quieter you become, the more you can hear.",
    "Meditation is the tongue of the soul and the language of our spirit.",
)


class QuoteRotator:
    """Cycle through a fixed list of quotes."""

    def __init__(
        self,
        quotes: tuple[str, ...] = QUOTES,
        *,
        interval_s: float = QUOTE_ROTATION_INTERVAL_S,
    ) -> None:
        if not quotes:
            raise ValueError("QuoteRotator requires at least one quote")
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        self._quotes = quotes
        self._index = 0
        self.interval_s = interval_s

    @property
    def index(self) -> int:
        return self._index

    @property
    def current(self) -> str:
        return self._quotes[self._index]

    def advance(self) -> str:
        self._index = (self._index + 1) % len(self._quotes)
        return self.current
