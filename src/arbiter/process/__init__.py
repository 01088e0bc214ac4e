"""Child process spawning, wake-up signalling and supervised shutdown."""

from arbiter.process.supervisor import (
    READY_BANNER,
    WAKEUP_SIGNAL,
    ChildHandle,
    ChildRole,
    Supervisor,
    TerminationGuard,
    child_command,
)

__all__ = [
    "READY_BANNER",
    "WAKEUP_SIGNAL",
    "ChildHandle",
    "ChildRole",
    "Supervisor",
    "TerminationGuard",
    "child_command",
]
