"""Error taxonomy for the referee and its child processes.

Every unrecoverable condition raised by arbiter derives from ArbiterError so
the CLI can turn it into a diagnostic and a failing exit status in one place.
"""

import signal


class ArbiterError(Exception):
    """Base exception for all referee and engine failures."""

    exit_code = 1


class SpawnFailure(ArbiterError):
    """Raised when a child process or its stream could not be created."""

    pass


class ProtocolViolation(ArbiterError):
    """Raised on a malformed line, an unexpected message or a missing acknowledgement."""

    pass


class IllegalMoveDetected(ArbiterError):
    """Raised when a move fails re-validation against the authoritative board.

    Attributes:
        move_text: The offending move as text.
        board_dump: Printable dump of the board the move was checked against.
    """

    def __init__(self, message: str, *, move_text: str = "", board_dump: str = "") -> None:
        super().__init__(message)
        self.move_text = move_text
        self.board_dump = board_dump

    def __str__(self) -> str:
        base = super().__str__()
        if self.board_dump:
            return f"{base}\n{self.board_dump}"
        return base


class NoLegalMove(ArbiterError):
    """Raised by the engine when the side to move has nothing legal to play."""

    exit_code = 3


class UnexpectedChildExit(ArbiterError):
    """Raised when a child needed for the game has exited."""

    pass


class TerminationRequested(ArbiterError):
    """Raised when the referee receives SIGINT or SIGTERM."""

    def __init__(self, signum: int) -> None:
        super().__init__(f"interrupted by {signal.Signals(signum).name}")
        self.signum = signum
        self.exit_code = 128 + signum
