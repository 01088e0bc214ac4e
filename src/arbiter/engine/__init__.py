"""Engine child: deadline timer and the iterative-deepening search scheduler.

The scheduler lives in arbiter.engine.scheduler and the child process entry
point in arbiter.engine.child; they are not re-exported here so that the
protocol layer can import the timer without pulling the scheduler in.
"""

from arbiter.engine.timer import CancellationToken, DeadlineTimer, WakeupLedger

__all__ = ["CancellationToken", "DeadlineTimer", "WakeupLedger"]
