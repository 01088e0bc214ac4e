"""Iterative-deepening search scheduler for the engine child.

The scheduler turns a per-move time budget into a sequence of depth
iterations. Each iteration runs the search primitive on a scratch copy of the
engine's mirrored board with a fresh principal-variation buffer; the result is
committed only when the iteration completes, so an interrupted depth never
leaks a half-searched line.

State machine:

    idle -> thinking -> {interrupted | completed} -> emitting -> idle

Between requests the scheduler keeps deepening the current position
("pondering") until a wake-up arrives. That work only seeds the next answer;
nothing depends on it for correctness.
"""

import random
import time
from enum import Enum

import chess
from loguru import logger

from arbiter.configs.schema import EngineConfig
from arbiter.engine.timer import CancellationToken, DeadlineTimer, WakeupLedger
from arbiter.errors import NoLegalMove, ProtocolViolation
from arbiter.game.clock import GameClock
from arbiter.game.rules import GameRules, Outcome, side_label
from arbiter.game.search import SearchCancelled, SearchStats
from arbiter.protocol.channel import StdioChannel
from arbiter.protocol.messages import (
    Acknowledgement,
    Message,
    MoveNotification,
    MoveReply,
    MoveRequest,
    format_message,
)

# Don't start a depth whose last timing, scaled by this, exceeds the time left.
DEPTH_TIME_MARGIN = 1.25


class SchedulerState(Enum):
    """Where the scheduler is in answering a request."""

    IDLE = "idle"
    THINKING = "thinking"
    INTERRUPTED = "interrupted"
    COMPLETED = "completed"
    EMITTING = "emitting"


def compute_budget(
    avg_time: float,
    plies_played: int,
    time_used: float,
    min_budget: float = 0.05,
) -> float | None:
    """Seconds available for the next move.

    The side to move may have spent up to avg_time per ply so far, including
    the one about to be played; whatever it has not used carries over.

    Args:
        avg_time: Configured average seconds per move; <= 0 means untimed.
        plies_played: Plies already on the board.
        time_used: Seconds the side to move has consumed so far.
        min_budget: Floor applied to the result.

    Returns:
        The budget in seconds, or None when play is untimed.
    """
    if avg_time <= 0:
        return None
    return max(min_budget, avg_time * (plies_played + 1) - time_used)


class SearchScheduler:
    """Answers move requests with the deepest fully-searched move in time.

    The scheduler owns the engine's mirrored board; only it mutates it, and
    only when emitting its own move or applying a notified one.
    """

    def __init__(
        self,
        rules: GameRules,
        config: EngineConfig,
        channel: StdioChannel,
        wakeups: WakeupLedger,
        *,
        board: chess.Board | None = None,
        timer: DeadlineTimer | None = None,
        clock: GameClock | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            rules: Game rules and search primitive.
            config: Engine configuration.
            channel: Where requests come from and answers go to.
            wakeups: Ledger fed by the wake-up signal handler.
            board: Starting position; a new game when None.
            timer: Deadline timer; a fresh one when None.
            clock: Per-side elapsed time; a fresh one when None.
        """
        self.rules = rules
        self.config = config
        self.channel = channel
        self.wakeups = wakeups
        self.board = board if board is not None else rules.new_board()
        self.timer = timer or DeadlineTimer()
        self.clock = clock or GameClock()
        self.token = CancellationToken(self.timer, wakeups)
        self.rng = random.Random(config.seed) if config.randomized else None

        self.state = SchedulerState.IDLE
        self.pv: list[chess.Move] = []
        self.score = 0
        self.completed_depth = 0
        self.depth_times: dict[int, float] = {}
        self.stats = SearchStats()
        self._exhausted = False

    # -----------------------------------------------------------------------
    # Event loop
    # -----------------------------------------------------------------------

    def run(self) -> None:
        """Serve requests until the referee closes the stream."""
        while True:
            if self._should_ponder():
                self.ponder()
            message = self.channel.read_message()
            if message is None:
                logger.debug("input closed; engine stopping")
                return
            self.handle(message)

    def handle(self, message: Message) -> None:
        """Dispatch one protocol message."""
        match message:
            case MoveRequest():
                self.answer_request()
            case MoveNotification(side=side, move_text=move_text):
                self.apply_notification(side, move_text)
            case _:
                raise ProtocolViolation(f"engine cannot handle {format_message(message)!r}")

    # -----------------------------------------------------------------------
    # Requests
    # -----------------------------------------------------------------------

    def answer_request(self) -> chess.Move:
        """Think within the budget, then emit a legal move.

        Returns:
            The move that was sent and applied.

        Raises:
            NoLegalMove: If the side to move has no legal move at all.
        """
        started = time.monotonic()
        side = self.rules.side_to_move(self.board)
        budget = compute_budget(
            self.config.avg_time,
            self.rules.ply_count(self.board),
            self.clock.used[side],
            self.config.min_budget,
        )
        if budget is None:
            max_depth = self.config.untimed_max_depth
            logger.debug(f"untimed move for {side_label(side)}, depth cap {max_depth}")
        else:
            max_depth = self.config.max_depth
            self.timer.arm(budget)
            logger.debug(f"{budget:.2f}s budget for {side_label(side)}")

        try:
            self.deepen(max_depth, timed=budget is not None)
        finally:
            fired = self.timer.fired
            self.timer.disarm()
        if fired:
            logger.debug(f"deadline fired; answering from depth {self.completed_depth}")

        move = self._select_move()
        if self.config.pace and budget is not None:
            self._pace(started)
        self._emit(move)
        return move

    def apply_notification(self, side: chess.Color, move_text: str) -> chess.Move:
        """Apply a move played elsewhere and acknowledge it.

        Raises:
            ProtocolViolation: If the move is for the wrong side or illegal here.
        """
        to_move = self.rules.side_to_move(self.board)
        if side != to_move:
            raise ProtocolViolation(
                f"notified of a {side_label(side)} move while {side_label(to_move)} is to move"
            )
        try:
            move = self.rules.parse_move(self.board, move_text)
        except ValueError as e:
            raise ProtocolViolation(f"cannot apply notified move {move_text!r}: {e}") from e

        self.rules.apply(self.board, move)
        self.clock.charge(side)
        self._advance(move)
        self.channel.send(Acknowledgement())
        return move

    # -----------------------------------------------------------------------
    # Thinking
    # -----------------------------------------------------------------------

    def deepen(self, max_depth: int, *, timed: bool) -> None:
        """Run depth iterations after the last completed one.

        Stops on cancellation (deadline or pending request), on a decisive
        score, at max_depth, or, when timed, before a depth that previously
        took longer than the time left.
        """
        self.state = SchedulerState.THINKING
        for depth in range(self.completed_depth + 1, max_depth + 1):
            if self.token.is_cancelled():
                self.state = SchedulerState.INTERRUPTED
                return
            if timed and self.completed_depth and not self._worth_starting(depth):
                logger.debug(f"not enough time left for depth {depth}")
                break
            if not self._search_depth(depth):
                self.state = SchedulerState.INTERRUPTED
                return
            if self.rules.is_decisive(self.score):
                self._exhausted = True
                break
        else:
            self._exhausted = True
        self.state = SchedulerState.COMPLETED

    def ponder(self) -> None:
        """Deepen on idle time until a request arrives or nothing is left to do."""
        cap = self.config.max_depth if self.config.avg_time > 0 else self.config.untimed_max_depth
        logger.trace(f"pondering from depth {self.completed_depth + 1}")
        self.deepen(cap, timed=False)
        if self.state is SchedulerState.COMPLETED:
            self.state = SchedulerState.IDLE

    def _should_ponder(self) -> bool:
        return (
            self.config.ponder
            and not self._exhausted
            and not self.wakeups.pending
            and self.rules.outcome(self.board) is Outcome.ONGOING
        )

    def _worth_starting(self, depth: int) -> bool:
        remaining = self.timer.remaining()
        previous = self.depth_times.get(depth)
        if remaining is None or previous is None:
            return True
        return remaining >= previous * DEPTH_TIME_MARGIN

    def _search_depth(self, depth: int) -> bool:
        """Search one depth; commit and return True only if it completed."""
        scratch = self.rules.copy_board(self.board)
        side = self.rules.side_to_move(scratch)
        pv: list[chess.Move] = []
        self.stats.reset()
        start = time.monotonic()
        try:
            score = self.rules.search(
                scratch,
                side,
                depth,
                -self.rules.max_eval,
                self.rules.max_eval,
                pv,
                cancel=self.token,
                stats=self.stats,
                rng=self.rng,
                hint=self.pv,
            )
        except SearchCancelled:
            logger.trace(f"depth {depth} interrupted after {self.stats.nodes} nodes")
            return False
        elapsed = time.monotonic() - start

        self.depth_times[depth] = elapsed
        self.pv = pv
        self.score = score
        self.completed_depth = depth
        self._log_iteration(depth, elapsed)
        return True

    def _log_iteration(self, depth: int, elapsed: float) -> None:
        line = " ".join(self._pv_text())
        nodes = self.stats.nodes + self.stats.quiescence_nodes
        message = f"depth {depth} score {self.score} nodes {nodes} time {elapsed:.3f}s pv {line}"
        if self.config.verbose:
            logger.info(message)
        else:
            logger.debug(message)

    def _pv_text(self) -> list[str]:
        board = self.rules.copy_board(self.board)
        words = []
        for move in self.pv:
            if not self.rules.is_legal(board, move):
                break
            words.append(self.rules.format_move(board, move))
            self.rules.apply(board, move)
        return words

    # -----------------------------------------------------------------------
    # Emission
    # -----------------------------------------------------------------------

    def _select_move(self) -> chess.Move:
        """PV head if usable, else a last-resort depth-1 search.

        Raises:
            NoLegalMove: If neither yields a legal move.
        """
        if self.pv and self.rules.is_legal(self.board, self.pv[0]):
            return self.pv[0]

        side = self.rules.side_to_move(self.board)
        logger.warning(f"no completed depth for {side_label(side)}; running a depth-1 search")
        if not self.rules.legal_moves(self.board):
            raise NoLegalMove(f"{side_label(side)} has no legal move")

        pv: list[chess.Move] = []
        score = self.rules.search(
            self.rules.copy_board(self.board),
            side,
            1,
            -self.rules.max_eval,
            self.rules.max_eval,
            pv,
            rng=self.rng,
        )
        if not pv or not self.rules.is_legal(self.board, pv[0]):
            raise NoLegalMove(f"depth-1 search found nothing for {side_label(side)}")
        self.pv = pv
        self.score = score
        self.completed_depth = 1
        return pv[0]

    def _pace(self, started: float) -> None:
        """Hold the move back until avg_time has passed since the request."""
        delay = self.config.avg_time - (time.monotonic() - started)
        if delay > 0.001:
            logger.trace(f"pacing: holding the move for {delay:.3f}s")
            time.sleep(delay)

    def _emit(self, move: chess.Move) -> None:
        """Send the move, then apply it to the mirrored board."""
        self.state = SchedulerState.EMITTING
        side = self.rules.side_to_move(self.board)
        text = self.rules.format_move(self.board, move)
        self.channel.send(MoveReply(move_text=text, side=side))
        self.rules.apply(self.board, move)
        self.clock.charge(side)
        self._advance(move)
        self.state = SchedulerState.IDLE

    def _advance(self, move: chess.Move) -> None:
        """Shift the PV past `move` if it predicted it, else drop it."""
        if self.completed_depth > 1 and self.pv and self.pv[0] == move:
            self.pv = self.pv[1:]
            self.completed_depth -= 1
            self.score = -self.score
        else:
            self.pv = []
            self.completed_depth = 0
            self.score = 0
        self._exhausted = False
