"""Reconnection delay generator.

Tracks the delay (in milliseconds) to wait before the next reconnect
attempt. The delay grows on every failure and snaps back to the start
value once a connection succeeds.
"""

import logging

logger = logging.getLogger("qtweet.backoff")

_MODES = ("exponential", "linear")


class Backoff:
    """Bounded backoff sequence.

    Exponential mode doubles the delay on each increment, linear mode adds
    the start value. Both clamp to max_value.

    Default: 2000ms → 4000 → 8000 → 16000 → 16000 ...
    """

    def __init__(
        self,
        mode: str = "exponential",
        start_value: int = 2000,
        max_value: int = 16000,
    ):
        """Initialize backoff.

        Args:
            mode: 'exponential' or 'linear'
            start_value: Delay after a reset, in milliseconds
            max_value: Ceiling for the delay, in milliseconds
        """
        if mode not in _MODES:
            raise ValueError(f"Unknown backoff mode: {mode}")
        if start_value <= 0:
            raise ValueError("start_value must be positive")
        self.mode = mode
        self.min_value = start_value
        self.max_value = max(start_value, max_value)
        self._current = start_value

    def value(self) -> int:
        """Current delay in milliseconds."""
        return self._current

    def increment(self) -> int:
        """Grow the delay, clamped to max_value. Returns the new value."""
        if self._current >= self.max_value:
            self._current = self.max_value
            return self._current
        if self.mode == "exponential":
            nxt = self._current * 2
        else:
            nxt = self._current + self.min_value
        self._current = min(nxt, self.max_value)
        logger.debug(f"Backoff increased to {self._current}ms")
        return self._current

    def reset(self):
        """Return to the start value."""
        self._current = self.min_value

    def __repr__(self) -> str:
        return f"Backoff(mode={self.mode!r}, value={self._current}, min={self.min_value}, max={self.max_value})"
