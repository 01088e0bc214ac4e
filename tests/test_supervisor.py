"""Tests for child supervision and the referee-side channel, using real child processes."""

import os
import signal
import sys
import time

import chess
import pytest

from arbiter.configs import RetryPolicy
from arbiter.errors import (
    ProtocolViolation,
    SpawnFailure,
    TerminationRequested,
    UnexpectedChildExit,
)
from arbiter.process import ChildRole, Supervisor, TerminationGuard, child_command
from arbiter.protocol import ChildChannel, MoveReply

ECHO_CHILD = """
print("# ready", flush=True)
for line in sys.stdin:
    line = line.strip()
    if line == "<":
        print("# thinking", flush=True)
        print("white:e4", flush=True)
    elif line.startswith(">"):
        print("ok", flush=True)
"""

SILENT_CHILD = """
print("# ready", flush=True)
for line in sys.stdin:
    pass
"""


def wait_until_exited(handle, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while handle.child.isalive() and time.monotonic() < deadline:
        time.sleep(0.01)


class TestSupervisor:
    """Tests for spawning, reaping and shutting down children."""

    def test_spawn_waits_for_ready(self, child_script) -> None:
        with Supervisor(spawn_timeout=10.0) as supervisor:
            handle = supervisor.spawn(ChildRole.ENGINE, child_script(ECHO_CHILD), name="echo")
            assert handle.running
            assert handle.pid > 0
            assert handle.name == "echo"
        assert handle.reaped

    def test_child_that_exits_early(self, child_script) -> None:
        argv = child_script("print('bad flag', flush=True)\nsys.exit(2)\n")
        with Supervisor(spawn_timeout=10.0) as supervisor:
            with pytest.raises(SpawnFailure, match="exited during startup"):
                supervisor.spawn(ChildRole.ENGINE, argv)

    def test_child_that_never_gets_ready(self, child_script) -> None:
        with Supervisor(spawn_timeout=0.5) as supervisor:
            with pytest.raises(SpawnFailure, match="did not become ready"):
                supervisor.spawn(ChildRole.ENGINE, child_script("time.sleep(30)\n"))
            assert all(handle.reaped for handle in supervisor.children)

    def test_missing_executable(self) -> None:
        with Supervisor() as supervisor:
            with pytest.raises(SpawnFailure):
                supervisor.spawn(ChildRole.ENGINE, ["/nonexistent/arbiter-child"])

    def test_failed_spawn_shuts_down_earlier_children(self, child_script) -> None:
        with Supervisor(spawn_timeout=0.5) as supervisor:
            first = supervisor.spawn(ChildRole.ENGINE, child_script(SILENT_CHILD))
            with pytest.raises(SpawnFailure):
                supervisor.spawn(ChildRole.DISPLAY, child_script("time.sleep(30)\n"))
            assert first.reaped

    def test_shutdown_terminates_politely(self, child_script) -> None:
        with Supervisor() as supervisor:
            handle = supervisor.spawn(ChildRole.ENGINE, child_script(SILENT_CHILD))
            supervisor.shutdown(handle)
            assert handle.reaped
            assert handle.exit_signal == signal.SIGTERM

    def test_shutdown_kills_after_grace_period(self, child_script) -> None:
        """Test that a child ignoring SIGTERM is gone within the grace period plus a small delta."""
        body = "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n" + SILENT_CHILD
        with Supervisor(grace_period=0.3) as supervisor:
            handle = supervisor.spawn(ChildRole.ENGINE, child_script(body))
            start = time.monotonic()
            supervisor.shutdown(handle)
            elapsed = time.monotonic() - start
        assert handle.exit_signal == signal.SIGKILL
        assert elapsed < 0.3 + 1.0

    def test_reap_collects_exited_children(self, child_script) -> None:
        with Supervisor() as supervisor:
            handle = supervisor.spawn(ChildRole.ENGINE, child_script("print('# ready', flush=True)\ntime.sleep(0.2)\n"))
            wait_until_exited(handle)
            reaped = supervisor.reap()
            assert reaped == [handle]
            assert handle.exit_code == 0
            assert not supervisor.child_exited
            assert "exited with code 0" in handle.describe_exit()

    def test_child_command_runs_the_cli_module(self) -> None:
        argv = child_command("engine", ["--avg-time", "1.0"])
        assert argv[:3] == [sys.executable, "-m", "arbiter.cli"]
        assert argv[3:] == ["engine", "--avg-time", "1.0"]


class TestChildChannel:
    """Tests for the referee side of the protocol against real children."""

    def test_request_and_notify(self, child_script) -> None:
        with Supervisor() as supervisor:
            handle = supervisor.spawn(ChildRole.ENGINE, child_script(ECHO_CHILD))
            channel = ChildChannel(supervisor, handle)

            assert channel.request_move() == MoveReply("e4", chess.WHITE)
            channel.notify(chess.BLACK, "e5")
            assert not channel.pending

    def test_garbage_reply_is_a_violation(self, child_script) -> None:
        body = 'print("# ready", flush=True)\nsys.stdin.readline()\nprint("this is not a move!", flush=True)\ntime.sleep(30)\n'
        with Supervisor() as supervisor:
            handle = supervisor.spawn(ChildRole.ENGINE, child_script(body))
            with pytest.raises(ProtocolViolation):
                ChildChannel(supervisor, handle).request_move()

    def test_missing_acknowledgement(self, child_script) -> None:
        """Test that retries are bounded and end in a violation."""
        retry = RetryPolicy(attempts=2, timeout=0.2, backoff=0.01)
        with Supervisor() as supervisor:
            handle = supervisor.spawn(ChildRole.ENGINE, child_script(SILENT_CHILD))
            channel = ChildChannel(supervisor, handle, retry=retry, poll_interval=0.05)
            start = time.monotonic()
            with pytest.raises(ProtocolViolation, match="after 2 attempts"):
                channel.notify(chess.WHITE, "e4")
            assert time.monotonic() - start < 2.0

    def test_diagnostics_do_not_extend_the_wait(self, child_script) -> None:
        """Test that a child that keeps logging but never acknowledges still times out."""
        body = 'print("# ready", flush=True)\nwhile True:\n    print("# thinking", flush=True)\n    time.sleep(0.05)\n'
        retry = RetryPolicy(attempts=2, timeout=0.3, backoff=0.01)
        polls = []
        with Supervisor() as supervisor:
            handle = supervisor.spawn(ChildRole.ENGINE, child_script(body))
            channel = ChildChannel(
                supervisor, handle, retry=retry, poll_interval=0.5, on_poll=lambda: polls.append(1)
            )
            start = time.monotonic()
            with pytest.raises(ProtocolViolation, match="after 2 attempts"):
                channel.notify(chess.WHITE, "e4")
            elapsed = time.monotonic() - start
        assert elapsed < 2 * 0.3 + 1.0
        assert polls

    def test_end_of_stream_is_the_sentinel(self, child_script) -> None:
        body = 'print("# ready", flush=True)\nsys.stdin.readline()\n'
        with Supervisor() as supervisor:
            handle = supervisor.spawn(ChildRole.ENGINE, child_script(body))
            assert ChildChannel(supervisor, handle).request_move() is None

    def test_child_gone_before_acknowledging(self, child_script) -> None:
        body = 'print("# ready", flush=True)\nsys.stdin.readline()\n'
        with Supervisor() as supervisor:
            handle = supervisor.spawn(ChildRole.ENGINE, child_script(body))
            with pytest.raises(UnexpectedChildExit):
                ChildChannel(supervisor, handle).notify(chess.WHITE, "e4")

    def test_one_outstanding_request(self, child_script) -> None:
        """Test that a second request is refused while the first is unanswered."""

        class Abort(Exception):
            pass

        def abort() -> None:
            raise Abort

        with Supervisor() as supervisor:
            handle = supervisor.spawn(ChildRole.ENGINE, child_script(SILENT_CHILD))
            channel = ChildChannel(supervisor, handle, poll_interval=0.05, on_poll=abort)
            with pytest.raises(Abort):
                channel.request_move()
            assert channel.pending
            with pytest.raises(ProtocolViolation, match="still owes"):
                channel.request_move()

    def test_reaped_child_cannot_be_addressed(self, child_script) -> None:
        with Supervisor() as supervisor:
            handle = supervisor.spawn(ChildRole.ENGINE, child_script(SILENT_CHILD))
            supervisor.shutdown(handle)
            with pytest.raises(UnexpectedChildExit):
                ChildChannel(supervisor, handle).request_move()


class TestTerminationGuard:
    """Tests for TerminationGuard."""

    def test_signal_raises(self) -> None:
        with TerminationGuard() as guard:
            with pytest.raises(TerminationRequested) as excinfo:
                os.kill(os.getpid(), signal.SIGTERM)
                time.sleep(1.0)
            assert not guard.requested
        assert excinfo.value.exit_code == 128 + signal.SIGTERM

    def test_deferred_until_block_ends(self) -> None:
        """Test that a signal inside a critical section is raised after it."""
        finished = False
        with TerminationGuard() as guard:
            with pytest.raises(TerminationRequested) as excinfo:
                with guard.deferred():
                    os.kill(os.getpid(), signal.SIGINT)
                    time.sleep(0.1)
                    assert guard.requested
                    finished = True
        assert finished
        assert excinfo.value.exit_code == 130

    def test_restores_previous_handlers(self) -> None:
        before = signal.getsignal(signal.SIGTERM)
        with TerminationGuard():
            assert signal.getsignal(signal.SIGTERM) != before
        assert signal.getsignal(signal.SIGTERM) == before
