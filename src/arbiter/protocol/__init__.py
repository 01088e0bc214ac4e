"""Line protocol between the referee and its child processes."""

from arbiter.protocol.channel import ChildChannel, StdioChannel
from arbiter.protocol.messages import (
    Acknowledgement,
    Diagnostic,
    Message,
    MoveNotification,
    MoveReply,
    MoveRequest,
    format_message,
    parse_line,
)

__all__ = [
    "Acknowledgement",
    "ChildChannel",
    "Diagnostic",
    "Message",
    "MoveNotification",
    "MoveReply",
    "MoveRequest",
    "StdioChannel",
    "format_message",
    "parse_line",
]
