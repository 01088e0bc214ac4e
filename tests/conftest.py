"""Pytest configuration and shared fixtures."""

import io
import sys
import textwrap
from collections.abc import Callable
from pathlib import Path

import chess
import pytest

from arbiter.engine.timer import WakeupLedger
from arbiter.game.rules import ChessRules
from arbiter.protocol.channel import StdioChannel

# White is checkmated (after 1. f3 e5 2. g4 Qh4#).
FOOLS_MATE_FEN = "rnb1kbnr/pppp1ppp/8/4p3/6Pq/5P2/PPPPP2P/RNBQKBNR w KQkq - 1 3"


@pytest.fixture
def rules() -> ChessRules:
    """Standard chess rules."""
    return ChessRules()


@pytest.fixture
def stdio() -> Callable[[str], tuple[StdioChannel, io.StringIO, WakeupLedger]]:
    """Build a child-side channel reading `text` and writing to a buffer."""

    def make(text: str = "") -> tuple[StdioChannel, io.StringIO, WakeupLedger]:
        wakeups = WakeupLedger()
        stdout = io.StringIO()
        return StdioChannel(wakeups, stdin=io.StringIO(text), stdout=stdout), stdout, wakeups

    return make


@pytest.fixture
def child_script(tmp_path: Path) -> Callable[[str], list[str]]:
    """Write a throwaway Python child program and return the argv that runs it.

    The program ignores the wake-up signal and prints the ready banner before
    running `body`.
    """
    counter = iter(range(1000))

    def make(body: str) -> list[str]:
        path = tmp_path / f"child_{next(counter)}.py"
        prelude = "import signal, sys, time\nsignal.signal(signal.SIGHUP, signal.SIG_IGN)\n"
        path.write_text(prelude + textwrap.dedent(body))
        return [sys.executable, str(path)]

    return make


@pytest.fixture
def fools_mate_moves() -> list[str]:
    """The four plies of the fastest possible mate."""
    return ["f3", "e5", "g4", "Qh4#"]


@pytest.fixture
def fools_mate_board() -> chess.Board:
    """Position where white has just been mated."""
    return chess.Board(FOOLS_MATE_FEN)
