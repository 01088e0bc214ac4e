"""Alpha-beta search primitive used by the engine scheduler.

The primitive searches one fixed depth and fills a principal-variation buffer.
It knows nothing about deadlines: callers hand it a cancellation token that is
polled every CHECK_EVERY_NODES nodes, and a cancelled search unwinds by raising
SearchCancelled. The board is always restored on the way out.
"""

import random
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

import chess

if TYPE_CHECKING:
    from typing import Protocol

    class CancelCheck(Protocol):
        """Anything exposing is_cancelled(), e.g. engine.timer.CancellationToken."""

        def is_cancelled(self) -> bool: ...


MAX_EVAL = 100_000
MAX_PLY = 64
# Scores at or beyond this magnitude mean a forced mate was found.
MATE_THRESHOLD = MAX_EVAL - MAX_PLY
CHECK_EVERY_NODES = 256
QUIESCENCE_LIMIT = 6

PIECE_VALUES = {
    chess.PAWN: 100,
    chess.KNIGHT: 320,
    chess.BISHOP: 330,
    chess.ROOK: 500,
    chess.QUEEN: 900,
    chess.KING: 0,
}


class SearchCancelled(Exception):
    """Raised inside the search when its cancellation token fires."""

    pass


@dataclass
class SearchStats:
    """Node counters for one search invocation."""

    nodes: int = 0
    quiescence_nodes: int = 0

    def reset(self) -> None:
        self.nodes = 0
        self.quiescence_nodes = 0


@dataclass
class _Context:
    cancel: "CancelCheck | None"
    stats: SearchStats
    rng: random.Random | None


def is_decisive(score: int) -> bool:
    """True when the score encodes a forced win or loss."""
    return abs(score) >= MATE_THRESHOLD


def evaluate(board: chess.Board) -> int:
    """Material balance in centipawns from the side to move's perspective."""
    score = 0
    for piece_type, value in PIECE_VALUES.items():
        score += value * len(board.pieces(piece_type, chess.WHITE))
        score -= value * len(board.pieces(piece_type, chess.BLACK))
    # Small nudge towards advancing pawns so quiet positions still make progress.
    for square in board.pieces(chess.PAWN, chess.WHITE):
        score += 2 * chess.square_rank(square)
    for square in board.pieces(chess.PAWN, chess.BLACK):
        score -= 2 * (7 - chess.square_rank(square))
    return score if board.turn == chess.WHITE else -score


def _capture_score(board: chess.Board, move: chess.Move) -> int:
    if not board.is_capture(move):
        return 0
    attacker = board.piece_at(move.from_square)
    victim = board.piece_at(move.to_square)
    attacker_val = PIECE_VALUES[attacker.piece_type] if attacker else 0
    victim_val = PIECE_VALUES[victim.piece_type] if victim else PIECE_VALUES[chess.PAWN]
    return 10_000 + victim_val - attacker_val


def _order_moves(
    board: chess.Board,
    moves: Iterable[chess.Move],
    hint: chess.Move | None,
    rng: random.Random | None,
) -> list[chess.Move]:
    ordered = list(moves)
    if rng is not None:
        rng.shuffle(ordered)
    # sorted() is stable, so the shuffle survives among equal scores
    ordered = sorted(ordered, key=lambda m: _capture_score(board, m), reverse=True)
    if hint is not None and hint in ordered:
        ordered.remove(hint)
        ordered.insert(0, hint)
    return ordered


def _checkpoint(ctx: _Context) -> None:
    if ctx.cancel is None:
        return
    if (ctx.stats.nodes + ctx.stats.quiescence_nodes) % CHECK_EVERY_NODES == 0:
        if ctx.cancel.is_cancelled():
            raise SearchCancelled


def _quiescence(board: chess.Board, alpha: int, beta: int, qdepth: int, ctx: _Context) -> int:
    ctx.stats.quiescence_nodes += 1
    _checkpoint(ctx)

    stand_pat = evaluate(board)
    if stand_pat >= beta or qdepth >= QUIESCENCE_LIMIT:
        return stand_pat
    alpha = max(alpha, stand_pat)

    captures = [m for m in board.legal_moves if board.is_capture(m)]
    for move in _order_moves(board, captures, None, None):
        board.push(move)
        try:
            score = -_quiescence(board, -beta, -alpha, qdepth + 1, ctx)
        finally:
            board.pop()
        if score >= beta:
            return score
        alpha = max(alpha, score)
    return alpha


def _negamax(
    board: chess.Board,
    depth: int,
    alpha: int,
    beta: int,
    ply: int,
    pv: list[chess.Move],
    hint: list[chess.Move] | None,
    ctx: _Context,
) -> int:
    ctx.stats.nodes += 1
    _checkpoint(ctx)
    pv.clear()

    moves = list(board.legal_moves)
    if not moves:
        return -(MAX_EVAL - ply) if board.is_check() else 0
    if ply > 0 and (board.is_insufficient_material() or board.is_repetition(2)):
        return 0
    if depth <= 0:
        return _quiescence(board, alpha, beta, 0, ctx)

    head = hint[0] if hint else None
    best = -MAX_EVAL - 1
    for move in _order_moves(board, moves, head, ctx.rng if ply == 0 else None):
        child_pv: list[chess.Move] = []
        child_hint = hint[1:] if hint and move == head else None
        board.push(move)
        try:
            score = -_negamax(board, depth - 1, -beta, -alpha, ply + 1, child_pv, child_hint, ctx)
        finally:
            board.pop()
        if score > best:
            best = score
            pv[:] = [move, *child_pv]
            alpha = max(alpha, score)
            if alpha >= beta:
                break
    return best


def search(
    board: chess.Board,
    side: chess.Color,
    depth: int,
    alpha: int,
    beta: int,
    pv: list[chess.Move],
    *,
    cancel: "CancelCheck | None" = None,
    stats: SearchStats | None = None,
    rng: random.Random | None = None,
    hint: list[chess.Move] | None = None,
) -> int:
    """Search `board` to a fixed depth and fill `pv` with the best line.

    Args:
        board: Position to search. Restored before returning or raising.
        side: Side to move; must match board.turn.
        depth: Nominal search depth in plies (>= 1).
        alpha: Lower score bound.
        beta: Upper score bound.
        pv: Buffer replaced with the principal variation on success. Left
            untouched when the search is cancelled.
        cancel: Optional token polled at node checkpoints.
        stats: Optional counters, updated in place.
        rng: Optional random source used to shuffle root move order.
        hint: Previous principal variation, tried first along its own line.

    Returns:
        Score from `side`'s perspective.

    Raises:
        SearchCancelled: If `cancel` fired during the search.
        ValueError: If `side` is not the side to move.
    """
    if side != board.turn:
        raise ValueError("search side does not match the side to move")
    ctx = _Context(cancel=cancel, stats=stats or SearchStats(), rng=rng)
    line: list[chess.Move] = []
    score = _negamax(board, max(depth, 1), alpha, beta, 0, line, hint, ctx)
    pv[:] = line
    return score
