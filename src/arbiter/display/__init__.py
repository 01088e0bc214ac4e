"""Display child process: board rendering and human move input."""

from arbiter.display.child import DisplayParticipant, run_display

__all__ = ["DisplayParticipant", "run_display"]
