"""Child process supervision.

Children are started with pexpect on a private PTY, so each one gets its own
duplex line stream and a fresh interpreter: nothing buffered in the parent is
ever flushed or reused by a child. A child announces it is ready by printing
the READY_BANNER diagnostic line once its signal handlers are installed; the
parent only sends wake-up signals after seeing it.

Example:
    with Supervisor(grace_period=0.25) as supervisor:
        handle = supervisor.spawn(ChildRole.ENGINE, engine_command(config))
        ...
    # every child has been terminated and reaped here
"""

import signal
import sys
import time
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum

import pexpect
from loguru import logger

from arbiter.errors import SpawnFailure, TerminationRequested
from arbiter.utils.logging import DIAGNOSTIC_PREFIX

READY_BANNER = f"{DIAGNOSTIC_PREFIX} ready"
WAKEUP_SIGNAL = signal.SIGHUP


class ChildRole(Enum):
    """What a child process does for the referee."""

    ENGINE = "engine"
    DISPLAY = "display"


@dataclass
class ChildHandle:
    """A spawned child and, once reaped, how it ended."""

    role: ChildRole
    name: str
    pid: int
    child: pexpect.spawn | None
    exit_code: int | None = None
    exit_signal: int | None = None

    @property
    def running(self) -> bool:
        return self.child is not None and self.child.isalive()

    @property
    def reaped(self) -> bool:
        return self.child is None

    def describe_exit(self) -> str:
        if self.exit_signal is not None:
            return f"{self.name} (pid {self.pid}) killed by signal {self.exit_signal}"
        if self.exit_code is not None:
            return f"{self.name} (pid {self.pid}) exited with code {self.exit_code}"
        return f"{self.name} (pid {self.pid}) still running"


def child_command(subcommand: str, args: Sequence[str] = ()) -> list[str]:
    """argv that runs an `arbiter` CLI subcommand in a fresh interpreter."""
    return [sys.executable, "-m", "arbiter.cli", subcommand, *args]


class Supervisor:
    """Spawns, wakes, reaps and shuts down child processes."""

    def __init__(
        self,
        *,
        spawn_timeout: float = 10.0,
        grace_period: float = 0.25,
    ) -> None:
        """Initialize the supervisor.

        Args:
            spawn_timeout: Seconds to wait for a child's ready banner.
            grace_period: Seconds between the terminate request and SIGKILL.
        """
        self.spawn_timeout = spawn_timeout
        self.grace_period = grace_period
        self.children: list[ChildHandle] = []
        self._child_exited = False
        self._previous_sigchld = None

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    def __enter__(self) -> "Supervisor":
        self._previous_sigchld = signal.signal(signal.SIGCHLD, self._on_sigchld)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        try:
            self.shutdown_all()
            self.reap()
        finally:
            if self._previous_sigchld is not None:
                signal.signal(signal.SIGCHLD, self._previous_sigchld)
                self._previous_sigchld = None

    def _on_sigchld(self, signum, frame) -> None:
        self._child_exited = True

    @property
    def child_exited(self) -> bool:
        """True once a SIGCHLD arrived that reap() has not handled yet."""
        return self._child_exited

    # -----------------------------------------------------------------------
    # Spawning
    # -----------------------------------------------------------------------

    def spawn(
        self,
        role: ChildRole,
        argv: Sequence[str],
        *,
        name: str | None = None,
        env: dict[str, str] | None = None,
    ) -> ChildHandle:
        """Start a child and wait for its ready banner.

        Args:
            role: What the child does for the referee.
            argv: Executable and arguments.
            name: Label used in diagnostics; defaults to the role.
            env: Environment for the child; inherits ours when None.

        Returns:
            Handle of the running child.

        Raises:
            SpawnFailure: If the process or its stream could not be created,
                or it never became ready. Children spawned earlier are shut
                down before this propagates.
        """
        name = name or role.value
        command, *args = argv
        logger.debug(f"Spawning {name}: {' '.join(argv)}")

        try:
            child = pexpect.spawn(
                command,
                args,
                encoding="utf-8",
                echo=False,
                timeout=self.spawn_timeout,
                env=env,
            )
        except (pexpect.ExceptionPexpect, OSError) as e:
            self.shutdown_all()
            raise SpawnFailure(f"could not start {name}: {e}") from e

        handle = ChildHandle(role=role, name=name, pid=child.pid, child=child)
        self.children.append(handle)

        try:
            child.expect(rf"{READY_BANNER}\r?\n", timeout=self.spawn_timeout)
        except pexpect.TIMEOUT as e:
            self.shutdown_all()
            raise SpawnFailure(f"{name} did not become ready within {self.spawn_timeout}s") from e
        except pexpect.EOF as e:
            output = (child.before or "").strip()
            self.shutdown_all()
            raise SpawnFailure(f"{name} exited during startup: {output or 'no output'}") from e

        for line in (child.before or "").splitlines():
            if line.strip():
                logger.debug(f"[{name}] {line.strip()}")

        logger.info(f"Started {name} (pid {handle.pid})")
        return handle

    # -----------------------------------------------------------------------
    # Signals to children
    # -----------------------------------------------------------------------

    def wake(self, handle: ChildHandle) -> None:
        """Send the data-less wake-up signal. A no-op for exited children."""
        if handle.child is None:
            return
        try:
            handle.child.kill(WAKEUP_SIGNAL)
        except OSError as e:
            logger.debug(f"wake-up for {handle.name} failed: {e}")

    # -----------------------------------------------------------------------
    # Shutdown and reaping
    # -----------------------------------------------------------------------

    def shutdown(self, handle: ChildHandle) -> None:
        """Terminate politely, wait the grace period, then force-kill."""
        child = handle.child
        if child is None:
            return

        if child.isalive():
            logger.debug(f"Terminating {handle.name} (pid {handle.pid})")
            child.kill(signal.SIGTERM)
            deadline = time.monotonic() + self.grace_period
            while child.isalive() and time.monotonic() < deadline:
                time.sleep(0.01)
            if child.isalive():
                logger.warning(f"{handle.name} ignored SIGTERM; killing")
                child.kill(signal.SIGKILL)

        self._close(handle)

    def shutdown_all(self) -> None:
        """Shut down every child that has not been reaped yet."""
        for handle in self.children:
            if handle.child is not None:
                self.shutdown(handle)

    def reap(self) -> list[ChildHandle]:
        """Non-blocking sweep that records and clears exited children.

        Returns:
            Handles reaped by this call.
        """
        self._child_exited = False
        exited = []
        for handle in self.children:
            if handle.child is not None and not handle.child.isalive():
                self._close(handle)
                exited.append(handle)
        return exited

    def _close(self, handle: ChildHandle) -> None:
        child = handle.child
        if child is None:
            return
        try:
            child.close(force=True)
        except pexpect.ExceptionPexpect as e:
            logger.warning(f"could not close {handle.name}: {e}")
        handle.exit_code = child.exitstatus
        handle.exit_signal = child.signalstatus
        handle.child = None
        logger.info(handle.describe_exit())


class TerminationGuard:
    """Turns SIGINT/SIGTERM into TerminationRequested, outside critical sections.

    Example:
        with TerminationGuard() as guard:
            ...
            with guard.deferred():
                apply_move_and_write_transcript()
    """

    def __init__(self, signals: Sequence[int] = (signal.SIGINT, signal.SIGTERM)) -> None:
        self.signals = tuple(signals)
        self._previous: dict[int, object] = {}
        self._depth = 0
        self._pending: int | None = None

    def __enter__(self) -> "TerminationGuard":
        for signum in self.signals:
            self._previous[signum] = signal.signal(signum, self._handle)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        for signum, previous in self._previous.items():
            signal.signal(signum, previous)
        self._previous.clear()

    def _handle(self, signum, frame) -> None:
        if self._depth:
            self._pending = signum
            return
        raise TerminationRequested(signum)

    @property
    def requested(self) -> bool:
        return self._pending is not None

    def check(self) -> None:
        """Raise a termination request that arrived while deferred."""
        if self._pending is not None and not self._depth:
            signum, self._pending = self._pending, None
            raise TerminationRequested(signum)

    @contextmanager
    def deferred(self) -> Iterator[None]:
        """Hold back termination until the block finishes."""
        self._depth += 1
        try:
            yield
        finally:
            self._depth -= 1
        self.check()
