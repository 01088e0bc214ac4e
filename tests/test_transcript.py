"""Tests for the transcript writer and history files."""

import io
from pathlib import Path

import chess
import pytest
from rich.console import Console

from arbiter.errors import ArbiterError
from arbiter.game import ChessRules
from arbiter.referee import (
    GameLoop,
    HistoryEntry,
    TextInputSource,
    Transcript,
    format_record,
    parse_history,
    read_history,
)

OPENING = ["e4", "c5", "Nf3", "d6", "d4", "cxd4", "Nxd4", "Nf6", "Nc3", "a6"]


def replay(rules: ChessRules, history, transcript: Transcript | None = None):
    """Replay `history` with no live moves and return the summary."""
    idle = TextInputSource(rules, io.StringIO(""), Console(file=io.StringIO()), prompt=False)
    loop = GameLoop(
        rules,
        {chess.WHITE: idle, chess.BLACK: idle},
        transcript=transcript,
        console=Console(file=io.StringIO()),
    )
    return loop.play(history)


class TestFormatRecord:
    """Tests for transcript line formatting."""

    def test_white_and_black_numbering(self) -> None:
        assert format_record(0, chess.WHITE, "e4") == "1. white:e4"
        assert format_record(1, chess.BLACK, "e5") == "1. ... black:e5"
        assert format_record(2, chess.WHITE, "Nf3") == "2. white:Nf3"
        assert format_record(41, chess.BLACK, "Qxf2#") == "21. ... black:Qxf2#"


class TestTranscript:
    """Tests for the Transcript writer."""

    def test_records_are_flushed_immediately(self, tmp_path: Path) -> None:
        """Test that each record is on disk before the transcript is closed."""
        path = tmp_path / "games" / "game.txt"
        transcript = Transcript.open(path)
        transcript.record(0, chess.WHITE, "e4")
        assert path.read_text() == "1. white:e4\n"
        transcript.record(1, chess.BLACK, "e5")
        assert path.read_text().splitlines() == ["1. white:e4", "1. ... black:e5"]
        transcript.close()
        assert transcript.records == 2

    def test_without_a_path_still_counts(self) -> None:
        with Transcript.open(None) as transcript:
            transcript.record(0, chess.WHITE, "d4")
        assert transcript.records == 1

    def test_borrowed_stream_is_left_open(self) -> None:
        stream = io.StringIO()
        with Transcript(stream) as transcript:
            transcript.record(0, chess.WHITE, "c4")
        assert not stream.closed
        assert stream.getvalue() == "1. white:c4\n"


class TestParseHistory:
    """Tests for history file parsing."""

    def test_transcript_notation(self) -> None:
        entries = list(parse_history(["1. white:e4", "1. ... black:e5"]))
        assert entries == [
            HistoryEntry("e4", chess.WHITE, 1),
            HistoryEntry("e5", chess.BLACK, 2),
        ]

    def test_numbering_and_labels_are_optional(self) -> None:
        entries = list(parse_history(["e4", "e5", "2. Nf3 Nc6", "3...Bc5 1-0"]))
        assert [entry.move_text for entry in entries] == ["e4", "e5", "Nf3", "Nc6", "Bc5"]

    def test_skips_comments_tags_and_blank_lines(self) -> None:
        lines = ["# opening", '[Event "Casual"]', "", "   ", "d4"]
        assert [entry.move_text for entry in parse_history(lines)] == ["d4"]

    def test_move_number_glued_to_dots(self) -> None:
        entries = list(parse_history(["1... e5"]))
        assert [entry.move_text for entry in entries] == ["e5"]

    def test_unknown_side_label(self) -> None:
        with pytest.raises(ArbiterError, match="line 1"):
            list(parse_history(["purple:e4"]))

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ArbiterError):
            read_history(tmp_path / "missing.txt")


class TestHistoryReplay:
    """Replaying a history must match playing the same moves live."""

    def test_replay_matches_live_play(self, rules: ChessRules, tmp_path: Path) -> None:
        path = tmp_path / "history.txt"
        path.write_text("\n".join(OPENING) + "\n")

        summary = replay(rules, read_history(path))

        live = chess.Board()
        for san in OPENING:
            live.push_san(san)
        assert summary.plies == len(OPENING)
        assert summary.position == live.fen()

    def test_transcript_can_be_fed_back(self, rules: ChessRules, tmp_path: Path) -> None:
        """Test that a written transcript is itself a valid history file."""
        first = tmp_path / "first.txt"
        with Transcript.open(first) as transcript:
            original = replay(rules, parse_history(OPENING), transcript)

        second = tmp_path / "second.txt"
        with Transcript.open(second) as transcript:
            resumed = replay(rules, read_history(first), transcript)

        assert resumed.position == original.position
        assert second.read_text() == first.read_text()
        assert len(first.read_text().splitlines()) == len(OPENING)
