"""Typed messages of the referee/child line protocol.

Wire format (one message per newline-terminated line):

    <               MoveRequest         "send me your move now"
    >white:e4       MoveNotification    "apply this move, then reply ok"
    e4 | white:e4   MoveReply           answer to a MoveRequest
    ok              Acknowledgement     answer to a MoveNotification
    # text          Diagnostic          child log output, never protocol

Anything else is a ProtocolViolation.
"""

import re
from dataclasses import dataclass

import chess

from arbiter.errors import ProtocolViolation
from arbiter.game.rules import parse_side, side_label
from arbiter.utils.logging import DIAGNOSTIC_PREFIX

REQUEST_MARKER = "<"
NOTIFY_MARKER = ">"
ACK_TOKEN = "ok"

_MOVE_TOKEN = re.compile(r"^[A-Za-z0-9+#=\-]+$")
_SIDE_PREFIX = re.compile(r"^(?P<side>[A-Za-z]+):(?P<move>.*)$")


@dataclass(frozen=True)
class MoveRequest:
    """Ask the peer for its move."""


@dataclass(frozen=True)
class MoveNotification:
    """Tell the peer that `side` played `move_text`."""

    side: chess.Color
    move_text: str


@dataclass(frozen=True)
class MoveReply:
    """A move sent back in answer to a MoveRequest."""

    move_text: str
    side: chess.Color | None = None


@dataclass(frozen=True)
class Acknowledgement:
    """Confirms a MoveNotification was applied."""


@dataclass(frozen=True)
class Diagnostic:
    """A log line from a child; relayed, never interpreted."""

    text: str


Message = MoveRequest | MoveNotification | MoveReply | Acknowledgement | Diagnostic


def _split_side(body: str, line: str) -> tuple[chess.Color | None, str]:
    match = _SIDE_PREFIX.match(body)
    if match is None:
        return None, body
    try:
        side = parse_side(match.group("side"))
    except ValueError as e:
        raise ProtocolViolation(f"unknown side label in {line!r}") from e
    return side, match.group("move").strip()


def _check_move_token(token: str, line: str) -> str:
    if not token or not _MOVE_TOKEN.match(token):
        raise ProtocolViolation(f"malformed move text in {line!r}")
    return token


def parse_line(line: str) -> Message:
    """Parse one protocol line (trailing CR/LF allowed).

    Raises:
        ProtocolViolation: If the line is empty or matches no message type.
    """
    text = line.rstrip("\r\n")
    stripped = text.strip()
    if not stripped:
        raise ProtocolViolation("empty protocol line")

    if stripped.startswith(DIAGNOSTIC_PREFIX):
        return Diagnostic(stripped[len(DIAGNOSTIC_PREFIX):].strip())

    if stripped == REQUEST_MARKER:
        return MoveRequest()

    if stripped.startswith(NOTIFY_MARKER):
        side, move_text = _split_side(stripped[1:].strip(), stripped)
        if side is None:
            raise ProtocolViolation(f"notification without a side label: {stripped!r}")
        return MoveNotification(side=side, move_text=_check_move_token(move_text, stripped))

    if stripped.startswith(REQUEST_MARKER):
        raise ProtocolViolation(f"unexpected content after request marker: {stripped!r}")

    if stripped.lower() == ACK_TOKEN:
        return Acknowledgement()

    side, move_text = _split_side(stripped, stripped)
    return MoveReply(move_text=_check_move_token(move_text, stripped), side=side)


def format_message(message: Message) -> str:
    """Encode a message as a single line without the trailing newline."""
    match message:
        case MoveRequest():
            return REQUEST_MARKER
        case MoveNotification(side=side, move_text=move_text):
            return f"{NOTIFY_MARKER}{side_label(side)}:{move_text}"
        case MoveReply(move_text=move_text, side=None):
            return move_text
        case MoveReply(move_text=move_text, side=side):
            return f"{side_label(side)}:{move_text}"
        case Acknowledgement():
            return ACK_TOKEN
        case Diagnostic(text=text):
            return f"{DIAGNOSTIC_PREFIX} {text}"
    raise TypeError(f"not a protocol message: {message!r}")
