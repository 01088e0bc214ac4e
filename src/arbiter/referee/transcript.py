"""Game transcript writer and history-file reader.

Records use the move-list notation

    1. white:e4
    1. ... black:e5

and a history file may use the same notation, with numbering and side labels
optional, so a transcript can be fed back in with -i to resume a game.
"""

import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO

import chess
from loguru import logger

from arbiter.errors import ArbiterError
from arbiter.game.rules import parse_side, side_label

# "12.", "12...", "..." and the same glued to a move ("12...Nf6")
_MOVE_NUMBER = re.compile(r"^\d*\.+")
_RESULTS = {"1-0", "0-1", "1/2-1/2", "*"}


def format_record(ply: int, side: chess.Color, move_text: str) -> str:
    """One transcript line; `ply` counts the plies played before this move."""
    turn = ply // 2 + 1
    if side == chess.WHITE:
        return f"{turn}. {side_label(side)}:{move_text}"
    return f"{turn}. ... {side_label(side)}:{move_text}"


class Transcript:
    """Append-only move record, flushed after every line.

    Example:
        with Transcript.open("game.txt") as transcript:
            transcript.record(0, chess.WHITE, "e4")
    """

    def __init__(self, stream: TextIO | None = None) -> None:
        self.stream = stream
        self.records = 0
        self._owned = False

    @classmethod
    def open(cls, path: str | Path | None) -> "Transcript":
        """Open `path` for writing; a None path records nothing but still counts."""
        if path is None:
            return cls()
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        transcript = cls(path.open("w", encoding="utf-8"))
        transcript._owned = True
        logger.debug(f"Writing transcript to {path}")
        return transcript

    def record(self, ply: int, side: chess.Color, move_text: str) -> None:
        if self.stream is not None:
            self.stream.write(format_record(ply, side, move_text) + "\n")
            self.stream.flush()
        self.records += 1

    def close(self) -> None:
        if self._owned and self.stream is not None:
            self.stream.close()
        self.stream = None

    def __enter__(self) -> "Transcript":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


@dataclass(frozen=True)
class HistoryEntry:
    """One move of a history file."""

    move_text: str
    side: chess.Color | None = None
    line_no: int = 0


def parse_history(lines: Iterable[str]) -> Iterator[HistoryEntry]:
    """Yield the moves of a history listing.

    Blank lines and lines starting with '#' or '[' (comments, PGN tags) are
    skipped, as are move numbers and result markers. Several moves may share
    a line.

    Raises:
        ArbiterError: On a side label that names no side.
    """
    for line_no, raw in enumerate(lines, start=1):
        line = raw.strip()
        if not line or line[0] in "#[":
            continue
        for token in line.split():
            if token in _RESULTS:
                continue
            token = _MOVE_NUMBER.sub("", token)
            if not token:
                continue
            side = None
            label, sep, move_text = token.partition(":")
            if sep:
                try:
                    side = parse_side(label)
                except ValueError as e:
                    raise ArbiterError(f"history line {line_no}: {e}") from e
                token = move_text
            if token:
                yield HistoryEntry(move_text=token, side=side, line_no=line_no)


def read_history(path: str | Path) -> list[HistoryEntry]:
    """Read and parse a history file.

    Raises:
        ArbiterError: If the file cannot be read or names an unknown side.
    """
    try:
        with open(path, encoding="utf-8") as f:
            entries = list(parse_history(f))
    except OSError as e:
        raise ArbiterError(f"cannot read history file {path}: {e}") from e
    logger.info(f"Loaded {len(entries)} moves from {path}")
    return entries
