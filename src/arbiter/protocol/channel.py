"""Line channels for the referee/child protocol.

ChildChannel is the referee's end of one child's PTY. It enforces strict
request/response alternation: at most one exchange is outstanding, and the
matching reply type is required before the next request can be sent.

StdioChannel is the child's end: it reads requests from stdin and writes
replies to stdout, counting every consumed line against the wake-up ledger.
"""

import select
import sys
import time
from collections.abc import Callable
from typing import TextIO

import chess
import pexpect
from loguru import logger

from arbiter.configs.schema import RetryPolicy
from arbiter.engine.timer import WakeupLedger
from arbiter.errors import ProtocolViolation, UnexpectedChildExit
from arbiter.process.supervisor import ChildHandle, Supervisor
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

_LINE_END = r"\r?\n"


class _ReadTimeout(Exception):
    pass


class ChildChannel:
    """Referee-side protocol endpoint for one child process."""

    def __init__(
        self,
        supervisor: Supervisor,
        handle: ChildHandle,
        *,
        retry: RetryPolicy | None = None,
        poll_interval: float = 0.1,
        on_poll: Callable[[], None] | None = None,
    ) -> None:
        """Initialize the channel.

        Args:
            supervisor: Supervisor that owns the child (used for wake-ups).
            handle: The child to talk to.
            retry: Acknowledgement retry policy for notifications.
            poll_interval: Read slice while blocked, in seconds.
            on_poll: Called between read slices; may raise to abort the wait
                (the game loop uses it to surface termination requests).
        """
        self.supervisor = supervisor
        self.handle = handle
        self.retry = retry or RetryPolicy()
        self.poll_interval = poll_interval
        self.on_poll = on_poll
        self._pending: type[Message] | None = None

    @property
    def name(self) -> str:
        return self.handle.name

    @property
    def pending(self) -> bool:
        """True while an exchange is waiting for its reply."""
        return self._pending is not None

    # -----------------------------------------------------------------------
    # Exchanges
    # -----------------------------------------------------------------------

    def request_move(self) -> MoveReply | None:
        """Send `<`, wake the child and block for its move.

        Returns:
            The reply, or None if the child closed its stream (the sentinel).

        Raises:
            ProtocolViolation: On any line that is not a move reply.
        """
        self._begin(MoveReply)
        self._send(MoveRequest())
        self.supervisor.wake(self.handle)

        message = self._read_message(timeout=None)
        self._pending = None
        if message is None:
            return None
        if not isinstance(message, MoveReply):
            raise ProtocolViolation(
                f"{self.name} answered a move request with {format_message(message)!r}"
            )
        return message

    def notify(self, side: chess.Color, move_text: str) -> None:
        """Tell the child about an applied move and wait for `ok`.

        The notification line is written exactly once; retries only repeat
        the wake-up and keep waiting, with backoff between attempts.

        Raises:
            ProtocolViolation: On a wrong reply or when every attempt timed out.
            UnexpectedChildExit: If the child closed its stream instead.
        """
        self._begin(Acknowledgement)
        self._send(MoveNotification(side=side, move_text=move_text))

        backoff = self.retry.backoff
        for attempt in range(1, self.retry.attempts + 1):
            self.supervisor.wake(self.handle)
            try:
                message = self._read_message(timeout=self.retry.timeout)
            except _ReadTimeout:
                logger.warning(
                    f"{self.name} has not acknowledged {move_text} "
                    f"(attempt {attempt}/{self.retry.attempts})"
                )
                if attempt < self.retry.attempts:
                    time.sleep(backoff)
                    backoff *= 2
                continue

            self._pending = None
            if message is None:
                raise UnexpectedChildExit(f"{self.name} closed its stream before acknowledging {move_text}")
            if not isinstance(message, Acknowledgement):
                raise ProtocolViolation(
                    f"{self.name} answered a notification with {format_message(message)!r}"
                )
            return

        raise ProtocolViolation(
            f"{self.name} did not acknowledge {move_text} after {self.retry.attempts} attempts"
        )

    # -----------------------------------------------------------------------
    # Plumbing
    # -----------------------------------------------------------------------

    def _begin(self, expected: type[Message]) -> None:
        if self._pending is not None:
            raise ProtocolViolation(
                f"{self.name} still owes a {self._pending.__name__}; refusing to send another request"
            )
        if self.handle.child is None:
            raise UnexpectedChildExit(f"{self.handle.describe_exit()}; cannot send to it")
        self._pending = expected

    def _send(self, message: Message) -> None:
        line = format_message(message)
        logger.trace(f"-> {self.name}: {line}")
        try:
            self.handle.child.sendline(line)
        except OSError as e:
            raise UnexpectedChildExit(f"{self.name} is gone: {e}") from e

    def _read_message(self, timeout: float | None) -> Message | None:
        """Next protocol message, relaying diagnostics; None at end of stream.

        The timeout covers the whole wait: diagnostics relayed meanwhile do
        not extend it.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            line = self._read_line(deadline)
            if line is None:
                return None
            if not line.strip():
                continue
            message = parse_line(line)
            if isinstance(message, Diagnostic):
                logger.info(f"[{self.name}] {message.text}")
                if self.on_poll is not None:
                    self.on_poll()
                continue
            logger.trace(f"<- {self.name}: {line}")
            return message

    def _read_line(self, deadline: float | None) -> str | None:
        child = self.handle.child
        if child is None:
            return None
        while True:
            slice_ = self.poll_interval
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise _ReadTimeout
                slice_ = min(slice_, remaining)
            try:
                index = child.expect([_LINE_END, pexpect.EOF], timeout=slice_)
            except pexpect.TIMEOUT:
                if self.on_poll is not None:
                    self.on_poll()
                continue
            if index == 0:
                return child.before
            # EOF: hand back a final unterminated line if there is one
            tail = (child.before or "").strip()
            return tail or None


class StdioChannel:
    """Child-side protocol endpoint over text streams (stdin/stdout by default)."""

    def __init__(
        self,
        wakeups: WakeupLedger,
        stdin: TextIO | None = None,
        stdout: TextIO | None = None,
    ) -> None:
        self.wakeups = wakeups
        self.stdin = stdin if stdin is not None else sys.stdin
        self.stdout = stdout if stdout is not None else sys.stdout

    def read_message(self) -> Message | None:
        """Block for the next request; None once the parent hung up."""
        while True:
            try:
                line = self.stdin.readline()
            except OSError:
                # A PTY whose master end closed reports EIO instead of EOF.
                return None
            if not line:
                return None
            if not line.strip():
                continue
            self.wakeups.mark_consumed()
            return parse_line(line)

    def input_ready(self) -> bool:
        """True if a read would not block (or readiness cannot be probed)."""
        try:
            readable, _, _ = select.select([self.stdin], [], [], 0)
        except (OSError, ValueError):
            return True
        return bool(readable)

    def send(self, message: Message) -> None:
        """Write one complete line and flush it."""
        self.stdout.write(format_message(message) + "\n")
        self.stdout.flush()
