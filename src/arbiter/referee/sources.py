"""Where the referee gets each side's moves from.

Every source returns a chess.Move parsed against the referee's board, or the
SENTINEL (null move) when its input ended. Sources backed by a child expose
the channel so the game loop can skip echoing a move back to its producer.
"""

from typing import Protocol, TextIO

import chess
from rich.console import Console

from arbiter.errors import IllegalMoveDetected, ProtocolViolation
from arbiter.game.rules import SENTINEL, GameRules, parse_side, side_label
from arbiter.protocol.channel import ChildChannel


class MoveSource(Protocol):
    """Anything that can produce the next move for a side."""

    name: str
    channel: ChildChannel | None

    def next_move(self, board: chess.Board) -> chess.Move: ...


class EngineSource:
    """Moves answered by an engine child."""

    def __init__(self, rules: GameRules, channel: ChildChannel) -> None:
        self.rules = rules
        self.channel = channel
        self.name = channel.name

    def next_move(self, board: chess.Board) -> chess.Move:
        """Request a move and parse it against `board`.

        Raises:
            ProtocolViolation: If the reply is labelled for the wrong side.
            IllegalMoveDetected: If the reply is not a legal move here.
        """
        reply = self.channel.request_move()
        if reply is None:
            return SENTINEL

        side = self.rules.side_to_move(board)
        if reply.side is not None and reply.side != side:
            raise ProtocolViolation(
                f"{self.name} answered for {side_label(reply.side)} while {side_label(side)} is to move"
            )
        try:
            return self.rules.parse_move(board, reply.move_text)
        except ValueError as e:
            raise IllegalMoveDetected(
                f"{self.name} played {reply.move_text!r} for {side_label(side)}: {e}",
                move_text=reply.move_text,
                board_dump=self.rules.render(board),
            ) from e


class DisplaySource(EngineSource):
    """Moves typed by a human into the display child.

    The display answers move requests exactly like an engine, so only the
    name differs.
    """


class TextInputSource:
    """Moves typed on a text stream (stdin in tournament or no-display mode).

    Invalid input is reported on the console and prompted for again; end of
    input yields the SENTINEL, which ends the game.
    """

    channel = None

    def __init__(
        self,
        rules: GameRules,
        stream: TextIO,
        console: Console | None = None,
        *,
        name: str = "input",
        prompt: bool = True,
    ) -> None:
        self.rules = rules
        self.stream = stream
        self.console = console or Console(stderr=True)
        self.name = name
        self.prompt = prompt

    def next_move(self, board: chess.Board) -> chess.Move:
        side = self.rules.side_to_move(board)
        while True:
            if self.prompt:
                self.console.print(f"{side_label(side)} to move > ", end="")
            line = self.stream.readline()
            if not line:
                return SENTINEL
            text = line.strip()
            if not text:
                continue
            try:
                return self._parse(board, side, text)
            except ValueError as e:
                self.console.print(f"[red]{e}[/red]")

    def _parse(self, board: chess.Board, side: chess.Color, text: str) -> chess.Move:
        label, sep, move_text = text.partition(":")
        if sep:
            if parse_side(label) != side:
                raise ValueError(f"it is {side_label(side)}'s turn, not {label.strip()}'s")
            text = move_text
        return self.rules.parse_move(board, text)
