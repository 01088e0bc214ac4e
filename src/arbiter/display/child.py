"""Display child: renders the game and collects moves from a human.

The display keeps its own mirrored board. Notifications are rendered with the
pre-move board (move text is only meaningful there), then applied and
acknowledged. A move request prompts the human on the display's terminal
until a legal move is typed; the answer is applied locally because the
referee does not echo display moves back.
"""

import signal
from typing import TextIO

import chess
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from arbiter.engine.timer import WakeupLedger
from arbiter.errors import ArbiterError, ProtocolViolation
from arbiter.game.rules import ChessRules, GameRules, side_label
from arbiter.process.supervisor import WAKEUP_SIGNAL
from arbiter.protocol.channel import StdioChannel
from arbiter.protocol.messages import (
    Acknowledgement,
    Diagnostic,
    MoveNotification,
    MoveReply,
    MoveRequest,
    format_message,
)
from arbiter.utils.logging import setup_child_logging


class DisplayParticipant:
    """Protocol participant that shows the board and asks a human for moves."""

    def __init__(
        self,
        rules: GameRules,
        channel: StdioChannel,
        console: Console,
        human_input: TextIO | None,
    ) -> None:
        self.rules = rules
        self.channel = channel
        self.console = console
        self.human_input = human_input
        self.board = rules.new_board()

    def run(self) -> None:
        """Serve the referee until it hangs up."""
        self.render()
        while True:
            message = self.channel.read_message()
            if message is None:
                return
            match message:
                case MoveNotification(side=side, move_text=move_text):
                    self.show_move(side, move_text)
                    self.channel.send(Acknowledgement())
                case MoveRequest():
                    reply = self.ask_human()
                    if reply is None:
                        logger.warning("no input left for the display; closing")
                        return
                    self.channel.send(reply)
                case _:
                    raise ProtocolViolation(f"display cannot handle {format_message(message)!r}")

    def show_move(self, side: chess.Color, move_text: str) -> None:
        """Parse against the pre-move board, apply, render."""
        try:
            move = self.rules.parse_move(self.board, move_text)
        except ValueError as e:
            raise ProtocolViolation(f"display cannot apply {move_text!r}: {e}") from e
        self.rules.apply(self.board, move)
        self.render(f"{side_label(side)}: {move_text}")

    def ask_human(self) -> MoveReply | None:
        """Prompt until a legal move is entered; None when input runs out."""
        if self.human_input is None:
            return None
        side = self.rules.side_to_move(self.board)
        while True:
            self.console.print(f"[bold]{side_label(side)} to move[/bold] > ", end="")
            line = self.human_input.readline()
            if not line:
                return None
            text = line.strip()
            if not text:
                continue
            try:
                move = self.rules.parse_move(self.board, text)
            except ValueError as e:
                self.console.print(f"[red]{e}[/red]")
                continue
            move_text = self.rules.format_move(self.board, move)
            self.rules.apply(self.board, move)
            self.render(f"{side_label(side)}: {move_text}")
            return MoveReply(move_text=move_text, side=side)

    def render(self, title: str | None = None) -> None:
        self.console.print(
            Panel(Text(self.rules.render(self.board)), title=title or "start", expand=False)
        )


def run_display(
    *,
    output_path: str | None,
    input_path: str | None,
    rules: GameRules | None = None,
    log_level: str = "INFO",
) -> int:
    """Run the display until the referee hangs up.

    Args:
        output_path: Terminal (or file) to render to; rendering is dropped when None.
        input_path: Terminal (or file) to read human moves from.
        rules: Game rules; chess when None.
        log_level: Minimum level of forwarded diagnostics.

    Returns:
        Process exit status.
    """
    setup_child_logging(log_level)

    wakeups = WakeupLedger()
    # The display only ever blocks on input, so wake-ups need no action.
    signal.signal(WAKEUP_SIGNAL, wakeups.notify)
    channel = StdioChannel(wakeups)
    wakeups.input_ready = channel.input_ready

    output = open(output_path, "w", encoding="utf-8") if output_path else None  # noqa: SIM115
    human_input = open(input_path, encoding="utf-8") if input_path else None  # noqa: SIM115
    try:
        console = Console(file=output, highlight=False) if output else Console(quiet=True)
        participant = DisplayParticipant(rules or ChessRules(), channel, console, human_input)
        channel.send(Diagnostic("ready"))
        participant.run()
    except ArbiterError as e:
        logger.error(f"display: {e}")
        return e.exit_code
    except OSError as e:
        logger.debug(f"display stream closed: {e}")
    finally:
        if output is not None:
            output.close()
        if human_input is not None:
            human_input.close()
    return 0
