"""The referee's game loop.

Per ply the loop asks the side to move's source for a move, re-validates it
on the authoritative board, shows it to the display (pre-move, so the display
can format it), applies it together with the transcript record as one
uninterruptible step, and notifies every engine that did not produce it.

    awaiting-move -> validating -> applying -> notifying -> (loop | terminal)

The authoritative board is mutated here and nowhere else.
"""

import contextlib
import os
import sys
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TextIO

import chess
from loguru import logger
from rich.console import Console

from arbiter.configs.schema import RefereeConfig
from arbiter.errors import IllegalMoveDetected, UnexpectedChildExit
from arbiter.game.clock import GameClock
from arbiter.game.rules import ChessRules, GameRules, Outcome, side_label
from arbiter.process.supervisor import (
    ChildRole,
    Supervisor,
    TerminationGuard,
    child_command,
)
from arbiter.protocol.channel import ChildChannel
from arbiter.referee.sources import DisplaySource, EngineSource, MoveSource, TextInputSource
from arbiter.referee.transcript import HistoryEntry, Transcript, read_history

TOURNAMENT_PREFIX = "@@@"


class LoopState(Enum):
    """Where the loop is within a ply."""

    AWAITING_MOVE = "awaiting_move"
    VALIDATING = "validating"
    APPLYING = "applying"
    NOTIFYING = "notifying"
    TERMINAL = "terminal"


@dataclass
class GameSummary:
    """How a game ended."""

    outcome: Outcome
    plies: int
    position: str
    time_used: dict[chess.Color, float] = field(default_factory=dict)

    @property
    def finished(self) -> bool:
        return self.outcome is not Outcome.ONGOING


class GameLoop:
    """Drives one game between two move sources."""

    def __init__(
        self,
        rules: GameRules,
        sources: dict[chess.Color, MoveSource],
        *,
        engines: Sequence[ChildChannel] = (),
        display: ChildChannel | None = None,
        transcript: Transcript | None = None,
        supervisor: Supervisor | None = None,
        guard: TerminationGuard | None = None,
        tournament: bool = False,
        max_plies: int | None = None,
        console: Console | None = None,
        out: TextIO | None = None,
    ) -> None:
        """Initialize the loop.

        Args:
            rules: Game rules.
            sources: Move source for each side.
            engines: Engine channels to notify of moves they did not make.
            display: Display channel, told about every move before it is applied.
            transcript: Where applied plies are recorded.
            supervisor: Owner of the children; reaped when a child exits.
            guard: Termination guard that protects the apply step.
            tournament: Echo engine moves on `out` as `@@@side:move`.
            max_plies: Stop an unfinished game once this many plies (history
                included) have been played.
            console: Console for the result announcement.
            out: Stream for tournament echoes (stdout by default).
        """
        self.rules = rules
        self.sources = sources
        self.engines = list(engines)
        self.display = display
        self.transcript = transcript or Transcript()
        self.supervisor = supervisor
        self.guard = guard
        self.tournament = tournament
        self.max_plies = max_plies
        self.console = console or Console()
        self.out = out or sys.stdout

        self.board = rules.new_board()
        self.clock = GameClock()
        self.state = LoopState.AWAITING_MOVE
        self.plies = 0

    # -----------------------------------------------------------------------
    # Game
    # -----------------------------------------------------------------------

    def play(self, history: Iterable[HistoryEntry] = ()) -> GameSummary:
        """Replay `history`, then play until the game ends or is cut short.

        A game is cut short when text input runs out or max_plies is reached;
        its outcome is then ONGOING.

        Raises:
            IllegalMoveDetected: If any move fails re-validation.
            UnexpectedChildExit: If a child died or hung up instead of moving.
            ProtocolViolation: If a child broke the line protocol.
        """
        outcome = self.preload(history)
        self.clock.restart()

        while outcome is Outcome.ONGOING:
            if self.max_plies is not None and self.plies >= self.max_plies:
                logger.info(f"stopping unfinished game at the {self.max_plies}-ply limit")
                break
            self.poll()
            side = self.rules.side_to_move(self.board)
            source = self.sources[side]

            self.state = LoopState.AWAITING_MOVE
            move = source.next_move(self.board)
            if not move:
                if source.channel is not None:
                    raise UnexpectedChildExit(f"{source.name} produced EOF instead of a move")
                logger.info(f"{source.name} closed; ending the game")
                break

            self._validate(move, side, source.name)
            self._commit(move, producer=source.channel)
            outcome = self.rules.outcome(self.board)

        return self._finish(outcome)

    def preload(self, history: Iterable[HistoryEntry]) -> Outcome:
        """Replay moves through the same validate/apply/notify path as live play."""
        outcome = self.rules.outcome(self.board)
        for entry in history:
            if outcome is not Outcome.ONGOING:
                logger.warning(f"history continues past the end of the game (line {entry.line_no})")
                break
            side = self.rules.side_to_move(self.board)
            if entry.side is not None and entry.side != side:
                raise IllegalMoveDetected(
                    f"history line {entry.line_no}: {side_label(entry.side)} move while "
                    f"{side_label(side)} is to move",
                    move_text=entry.move_text,
                    board_dump=self.rules.render(self.board),
                )
            try:
                move = self.rules.parse_move(self.board, entry.move_text)
            except ValueError as e:
                raise IllegalMoveDetected(
                    f"history line {entry.line_no}: {e}",
                    move_text=entry.move_text,
                    board_dump=self.rules.render(self.board),
                ) from e
            self._validate(move, side, "history")
            self._commit(move, producer=None)
            outcome = self.rules.outcome(self.board)
        return outcome

    def poll(self) -> None:
        """Surface deferred termination requests and children that exited.

        Also installed as the channels' between-reads hook, so a blocked read
        notices both.

        Raises:
            TerminationRequested: If a termination signal is pending.
            UnexpectedChildExit: If a child the game still needs has exited.
        """
        if self.guard is not None:
            self.guard.check()
        if self.supervisor is None or not self.supervisor.child_exited:
            return
        needed = {id(channel.handle) for channel in self.channels}
        for handle in self.supervisor.reap():
            if id(handle) in needed:
                raise UnexpectedChildExit(handle.describe_exit())

    # -----------------------------------------------------------------------
    # Ply steps
    # -----------------------------------------------------------------------

    def _validate(self, move: chess.Move, side: chess.Color, producer: str) -> None:
        self.state = LoopState.VALIDATING
        if not self.rules.is_legal(self.board, move):
            raise IllegalMoveDetected(
                f"{producer} played an illegal move for {side_label(side)}: {move}",
                move_text=str(move),
                board_dump=self.rules.render(self.board),
            )

    def _commit(self, move: chess.Move, *, producer: ChildChannel | None) -> None:
        side = self.rules.side_to_move(self.board)
        ply = self.rules.ply_count(self.board)
        text = self.rules.format_move(self.board, move)

        # The display formats against its own board, so it must see the move first.
        if self.display is not None and self.display is not producer:
            self.display.notify(side, text)

        self.state = LoopState.APPLYING
        with self._critical():
            self.rules.apply(self.board, move)
            self.clock.charge(side)
            self.transcript.record(ply, side, text)
            self.plies += 1
        logger.debug(f"{self.transcript.records}: {side_label(side)} {text}")

        if self.tournament and producer is not None and producer in self.engines:
            self.out.write(f"{TOURNAMENT_PREFIX}{side_label(side)}:{text}\n")
            self.out.flush()

        self.state = LoopState.NOTIFYING
        for channel in self.engines:
            if channel is not producer:
                channel.notify(side, text)

    def _finish(self, outcome: Outcome) -> GameSummary:
        self.state = LoopState.TERMINAL
        if outcome is not Outcome.ONGOING:
            self.console.print(f"[bold]{outcome.announcement}[/bold]")
        logger.info(f"Game over after {self.plies} plies: {outcome.value}")
        return GameSummary(
            outcome=outcome,
            plies=self.plies,
            position=self.rules.serialize(self.board),
            time_used=dict(self.clock.used),
        )

    @property
    def channels(self) -> list[ChildChannel]:
        """Every child channel the game depends on."""
        channels = list(self.engines)
        if self.display is not None:
            channels.append(self.display)
        return channels

    def _critical(self) -> contextlib.AbstractContextManager:
        if self.guard is None:
            return contextlib.nullcontext()
        return self.guard.deferred()


def run_game(
    config: RefereeConfig,
    *,
    rules: GameRules | None = None,
    input_stream: TextIO | None = None,
    console: Console | None = None,
    out: TextIO | None = None,
) -> GameSummary:
    """Spawn the configured children, play one game and tear everything down.

    Args:
        config: Referee configuration.
        rules: Game rules; chess when None.
        input_stream: Text input for human sides without a display (stdin).
        console: Console for prompts and the result announcement.
        out: Stream for tournament echoes.

    Returns:
        Summary of the finished (or abandoned) game.

    Raises:
        ArbiterError: On any unrecoverable failure; children are shut down
            before it propagates.
    """
    rules = rules or ChessRules()
    console = console or Console()
    history = read_history(config.init_file) if config.init_file else []

    display_tty = None
    if config.uses_display:
        display_tty = config.display_tty or _terminal_name()
        if display_tty is None:
            logger.warning("No terminal for the display; reading moves as text instead")

    with (
        TerminationGuard() as guard,
        Supervisor(spawn_timeout=config.spawn_timeout, grace_period=config.grace_period) as supervisor,
        Transcript.open(config.transcript) as transcript,
    ):
        engine = None
        if config.uses_engine:
            argv = child_command("engine", [*config.engine.to_argv(), "--log-level", config.log_level])
            handle = supervisor.spawn(ChildRole.ENGINE, argv, name="engine")
            engine = ChildChannel(
                supervisor, handle, retry=config.retry, poll_interval=config.poll_interval
            )

        display = None
        if display_tty is not None:
            argv = child_command("display", ["--tty", display_tty, "--log-level", config.log_level])
            handle = supervisor.spawn(ChildRole.DISPLAY, argv, name="display")
            display = ChildChannel(
                supervisor, handle, retry=config.retry, poll_interval=config.poll_interval
            )

        if display is not None:
            human: MoveSource = DisplaySource(rules, display)
        else:
            human = TextInputSource(
                rules,
                input_stream or sys.stdin,
                Console(stderr=True),
                prompt=not config.tournament,
            )
        sources: dict[chess.Color, MoveSource] = {
            chess.WHITE: EngineSource(rules, engine) if config.engine_white else human,
            chess.BLACK: EngineSource(rules, engine) if config.engine_black else human,
        }

        loop = GameLoop(
            rules,
            sources,
            engines=[engine] if engine is not None else [],
            display=display,
            transcript=transcript,
            supervisor=supervisor,
            guard=guard,
            tournament=config.tournament,
            max_plies=config.max_plies,
            console=console,
            out=out,
        )
        for channel in loop.channels:
            channel.on_poll = loop.poll
        return loop.play(history)


def _terminal_name() -> str | None:
    """Path of the terminal the referee was started from, if any."""
    for stream in (sys.stdin, sys.stderr):
        try:
            if stream.isatty():
                return os.ttyname(stream.fileno())
        except (OSError, ValueError):
            continue
    return None
