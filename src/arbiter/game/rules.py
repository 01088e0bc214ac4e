"""Game rules capability object.

The referee, the protocol layer and the engine scheduler never touch
python-chess directly; they go through a GameRules object so ownership of each
board instance stays explicit and the game can be swapped out.
"""

import random
from enum import Enum
from typing import Protocol

import chess

from arbiter.game import search as _search

SIDE_LABELS = {chess.WHITE: "white", chess.BLACK: "black"}

# The null move is falsy and reserved as the "no move" sentinel.
SENTINEL = chess.Move.null()


class Outcome(Enum):
    """Terminal-state classification of a board."""

    ONGOING = "ongoing"
    WHITE_WINS = "white_wins"
    BLACK_WINS = "black_wins"
    DRAW = "draw"

    @property
    def announcement(self) -> str:
        return {
            Outcome.ONGOING: "Game in progress",
            Outcome.WHITE_WINS: "White wins!",
            Outcome.BLACK_WINS: "Black wins!",
            Outcome.DRAW: "Draw.",
        }[self]


def side_label(side: chess.Color) -> str:
    """Wire label for a side ("white" / "black")."""
    return SIDE_LABELS[side]


def parse_side(label: str) -> chess.Color:
    """Inverse of side_label.

    Raises:
        ValueError: If the label names no side.
    """
    lowered = label.strip().lower()
    for side, name in SIDE_LABELS.items():
        if lowered == name:
            return side
    raise ValueError(f"Unknown side label: {label!r}")


class GameRules(Protocol):
    """Operations the referee and the engine need from a game."""

    max_eval: int

    def new_board(self) -> chess.Board: ...

    def copy_board(self, board: chess.Board) -> chess.Board: ...

    def side_to_move(self, board: chess.Board) -> chess.Color: ...

    def ply_count(self, board: chess.Board) -> int: ...

    def legal_moves(self, board: chess.Board) -> list[chess.Move]: ...

    def is_legal(self, board: chess.Board, move: chess.Move) -> bool: ...

    def apply(self, board: chess.Board, move: chess.Move) -> None: ...

    def format_move(self, board: chess.Board, move: chess.Move) -> str: ...

    def parse_move(self, board: chess.Board, text: str) -> chess.Move: ...

    def outcome(self, board: chess.Board) -> Outcome: ...

    def search(
        self,
        board: chess.Board,
        side: chess.Color,
        depth: int,
        alpha: int,
        beta: int,
        pv: list[chess.Move],
        **kwargs,
    ) -> int: ...

    def is_decisive(self, score: int) -> bool: ...

    def render(self, board: chess.Board) -> str: ...

    def serialize(self, board: chess.Board) -> str: ...


class ChessRules:
    """GameRules implementation backed by python-chess.

    Moves travel as SAN; parse_move also accepts UCI so hand-typed input like
    "e2e4" works.
    """

    max_eval = _search.MAX_EVAL
    max_ply = _search.MAX_PLY

    def __init__(self, starting_fen: str = chess.STARTING_FEN) -> None:
        self.starting_fen = starting_fen

    def new_board(self) -> chess.Board:
        return chess.Board(self.starting_fen)

    def copy_board(self, board: chess.Board) -> chess.Board:
        return board.copy()

    def side_to_move(self, board: chess.Board) -> chess.Color:
        return board.turn

    def ply_count(self, board: chess.Board) -> int:
        return board.ply()

    def legal_moves(self, board: chess.Board) -> list[chess.Move]:
        return list(board.legal_moves)

    def is_legal(self, board: chess.Board, move: chess.Move) -> bool:
        return bool(move) and board.is_legal(move)

    def apply(self, board: chess.Board, move: chess.Move) -> None:
        board.push(move)

    def format_move(self, board: chess.Board, move: chess.Move) -> str:
        """SAN for `move`; `board` must be the position before the move."""
        return board.san(move)

    def parse_move(self, board: chess.Board, text: str) -> chess.Move:
        """Parse SAN or UCI text against `board`.

        Raises:
            ValueError: If the text is not a legal move in this position.
        """
        token = text.strip()
        if not token:
            raise ValueError("empty move text")
        try:
            move = board.parse_san(token)
        except ValueError:
            move = board.parse_uci(token.lower())
        if not move:
            raise ValueError(f"null move is not playable: {text!r}")
        return move

    def outcome(self, board: chess.Board) -> Outcome:
        result = board.outcome()
        if result is None:
            return Outcome.ONGOING
        if result.winner is None:
            return Outcome.DRAW
        return Outcome.WHITE_WINS if result.winner == chess.WHITE else Outcome.BLACK_WINS

    def search(
        self,
        board: chess.Board,
        side: chess.Color,
        depth: int,
        alpha: int,
        beta: int,
        pv: list[chess.Move],
        *,
        cancel=None,
        stats: _search.SearchStats | None = None,
        rng: random.Random | None = None,
        hint: list[chess.Move] | None = None,
    ) -> int:
        return _search.search(
            board, side, depth, alpha, beta, pv, cancel=cancel, stats=stats, rng=rng, hint=hint
        )

    def is_decisive(self, score: int) -> bool:
        return _search.is_decisive(score)

    def render(self, board: chess.Board) -> str:
        return f"{board}\nFEN: {board.fen()}"

    def serialize(self, board: chess.Board) -> str:
        """Canonical text form of the position (FEN)."""
        return board.fen()
