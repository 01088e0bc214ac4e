"""Per-side elapsed-time bookkeeping."""

import time

import chess


class GameClock:
    """Charges wall-clock time to the side that just moved.

    The clock runs from the last mark; charge() bills the interval to a side
    and starts the next interval.
    """

    def __init__(self) -> None:
        self.used: dict[chess.Color, float] = {chess.WHITE: 0.0, chess.BLACK: 0.0}
        self._mark = time.monotonic()

    def restart(self) -> None:
        """Start a fresh interval without billing anyone (e.g. after a preload)."""
        self._mark = time.monotonic()

    def charge(self, side: chess.Color) -> float:
        """Bill the time since the last mark to `side`.

        Returns:
            Seconds billed.
        """
        now = time.monotonic()
        elapsed = now - self._mark
        self.used[side] += elapsed
        self._mark = now
        return elapsed
