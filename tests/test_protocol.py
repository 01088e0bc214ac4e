"""Tests for protocol messages and the child-side stdio channel."""

import chess
import pytest

from arbiter.errors import ProtocolViolation
from arbiter.protocol import (
    Acknowledgement,
    Diagnostic,
    MoveNotification,
    MoveReply,
    MoveRequest,
    format_message,
    parse_line,
)


class TestParseLine:
    """Tests for decoding protocol lines."""

    def test_request(self) -> None:
        assert parse_line("<\n") == MoveRequest()

    def test_notification(self) -> None:
        assert parse_line(">white:e4\r\n") == MoveNotification(side=chess.WHITE, move_text="e4")

    def test_reply_without_side(self) -> None:
        assert parse_line("Nf3") == MoveReply(move_text="Nf3")

    def test_reply_with_side(self) -> None:
        assert parse_line("black:e5") == MoveReply(move_text="e5", side=chess.BLACK)

    def test_reply_with_check_marks(self) -> None:
        """A mating SAN contains '#' but is not a diagnostic."""
        assert parse_line("black:Qh4#") == MoveReply(move_text="Qh4#", side=chess.BLACK)
        assert parse_line("exd8=Q+") == MoveReply(move_text="exd8=Q+")

    def test_acknowledgement_is_case_insensitive(self) -> None:
        assert parse_line("ok") == Acknowledgement()
        assert parse_line("OK\n") == Acknowledgement()

    def test_diagnostic(self) -> None:
        assert parse_line("# INFO | depth 3") == Diagnostic("INFO | depth 3")

    @pytest.mark.parametrize(
        "line",
        ["", "   \n", ">e4", ">purple:e4", "<e4", "this is not a move", "white:", "what?"],
    )
    def test_violations(self, line: str) -> None:
        """Test that lines matching no message type are rejected."""
        with pytest.raises(ProtocolViolation):
            parse_line(line)


class TestFormatMessage:
    """Tests for encoding messages."""

    def test_wire_forms(self) -> None:
        assert format_message(MoveRequest()) == "<"
        assert format_message(MoveNotification(chess.BLACK, "e5")) == ">black:e5"
        assert format_message(MoveReply("e4")) == "e4"
        assert format_message(MoveReply("e4", chess.WHITE)) == "white:e4"
        assert format_message(Acknowledgement()) == "ok"
        assert format_message(Diagnostic("ready")) == "# ready"

    def test_parse_inverts_format(self) -> None:
        messages = [
            MoveRequest(),
            MoveNotification(chess.WHITE, "O-O"),
            MoveReply("Qxf7#", chess.WHITE),
            Acknowledgement(),
            Diagnostic("hello"),
        ]
        for message in messages:
            assert parse_line(format_message(message)) == message

    def test_rejects_non_messages(self) -> None:
        with pytest.raises(TypeError):
            format_message("e4")


class TestStdioChannel:
    """Tests for the child-side channel."""

    def test_reads_messages_and_counts_them(self, stdio) -> None:
        """Test that every consumed line is counted against the ledger."""
        channel, _, wakeups = stdio("<\n>white:e4\n")
        assert channel.read_message() == MoveRequest()
        assert channel.read_message() == MoveNotification(chess.WHITE, "e4")
        assert wakeups.consumed == 2

    def test_blank_lines_are_not_consumed(self, stdio) -> None:
        channel, _, wakeups = stdio("\n\n<\n")
        assert channel.read_message() == MoveRequest()
        assert wakeups.consumed == 1

    def test_end_of_input(self, stdio) -> None:
        channel, _, _ = stdio("")
        assert channel.read_message() is None

    def test_send_writes_whole_lines(self, stdio) -> None:
        channel, stdout, _ = stdio()
        channel.send(MoveReply("e4", chess.WHITE))
        channel.send(Acknowledgement())
        assert stdout.getvalue() == "white:e4\nok\n"

    def test_input_ready_without_a_file_descriptor(self, stdio) -> None:
        """Streams that cannot be probed are assumed ready."""
        channel, _, _ = stdio("<\n")
        assert channel.input_ready() is True

    def test_malformed_line_raises(self, stdio) -> None:
        channel, _, _ = stdio("garbage line\n")
        with pytest.raises(ProtocolViolation):
            channel.read_message()
