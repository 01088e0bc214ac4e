"""Deadline timer, wake-up ledger and the cancellation token built on them.

A search iteration is cancelled when either its deadline fires or the
referee has signalled a new request. Neither source ever interrupts the
search directly; both only flip state that the search polls at checkpoints.
"""

import threading
import time
from collections.abc import Callable


class DeadlineTimer:
    """One-shot wall-clock alarm.

    Example:
        timer = DeadlineTimer()
        timer.arm(1.5)
        ...
        if timer.fired:
            ...
        timer.disarm()
    """

    def __init__(self) -> None:
        self._fired = threading.Event()
        self._timer: threading.Timer | None = None
        self.expires_at: float | None = None

    def arm(self, seconds: float) -> None:
        """Start the alarm, replacing any alarm already armed."""
        self.disarm()
        self._fired.clear()
        self.expires_at = time.monotonic() + seconds
        self._timer = threading.Timer(seconds, self._fired.set)
        self._timer.daemon = True
        self._timer.start()

    def disarm(self) -> None:
        """Cancel the alarm and forget whether it fired. Harmless when nothing is armed."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._fired.clear()
        self.expires_at = None

    @property
    def armed(self) -> bool:
        return self._timer is not None

    @property
    def fired(self) -> bool:
        return self._fired.is_set()

    def remaining(self) -> float | None:
        """Seconds until expiry, or None when nothing is armed."""
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - time.monotonic())


class WakeupLedger:
    """Counts wake-up signals against lines actually consumed.

    Each request line from the referee is paired with at least one wake-up
    signal, but the two can arrive in either order. `received` is written
    only by the signal handler and `consumed` only by the reader, so neither
    counter is ever updated from two places.

    Acknowledgement retries repeat the wake-up without repeating the line, so
    `received` may run ahead for good. When an `input_ready` probe is set, a
    surplus only counts as a pending request while input is actually waiting.
    """

    def __init__(self, input_ready: Callable[[], bool] | None = None) -> None:
        self.received = 0
        self.consumed = 0
        self.input_ready = input_ready

    def notify(self, *_args) -> None:
        """Record one wake-up. Usable directly as a signal handler."""
        self.received += 1

    def mark_consumed(self) -> None:
        self.consumed += 1

    @property
    def pending(self) -> bool:
        if self.received <= self.consumed:
            return False
        return self.input_ready is None or self.input_ready()


class CancellationToken:
    """Cancelled when the deadline fired or a request is waiting to be read."""

    def __init__(self, timer: DeadlineTimer, wakeups: WakeupLedger) -> None:
        self.timer = timer
        self.wakeups = wakeups

    @property
    def deadline_fired(self) -> bool:
        return self.timer.fired

    @property
    def request_pending(self) -> bool:
        return self.wakeups.pending

    def is_cancelled(self) -> bool:
        return self.timer.fired or self.wakeups.pending
