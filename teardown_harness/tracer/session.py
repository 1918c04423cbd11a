"""
Injection session state.

One InjectionSession tracks one running tracer attachment:

    SPAWNED -> ARMED (first output byte) -> COMPLETED (tracer exited)

SPAWNED -> COMPLETED is also allowed, but only on the attachment failure
path where the tracer exits before it ever produced output. COMPLETED is
terminal. The armed and completed signals are latches: a waiter that
starts before the signal fires still sees it, and neither can fire twice.
"""

import asyncio
import time
from collections import deque
from enum import Enum
from typing import Any

from teardown_harness.errors import InvalidSessionTransition, TracerExitError
from teardown_harness.logging import get_logger

logger = get_logger(__name__)


class SessionState(str, Enum):
    """Injection session lifecycle."""

    SPAWNED = "SPAWNED"
    ARMED = "ARMED"
    COMPLETED = "COMPLETED"

    @property
    def may_proceed(self) -> bool:
        """Whether the scenario under test may keep running in this state."""
        return self in (SessionState.SPAWNED, SessionState.ARMED)


SESSION_TRANSITIONS: dict[SessionState, set[SessionState]] = {
    SessionState.SPAWNED: {SessionState.ARMED, SessionState.COMPLETED},
    SessionState.ARMED: {SessionState.COMPLETED},
    SessionState.COMPLETED: set(),
}


class Latch:
    """Fire-once signal built on asyncio.Event."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._event = asyncio.Event()
        self._fired_at: float | None = None

    @property
    def is_set(self) -> bool:
        return self._event.is_set()

    @property
    def fired_at(self) -> float | None:
        return self._fired_at

    def fire(self) -> None:
        if self._fired_at is not None:
            raise InvalidSessionTransition(f"{self.name} signal already fired")
        self._fired_at = time.monotonic()
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


class InjectionSession:
    """
    One tracer attachment to a target process tree.

    The tracer's combined output has a single writer (the tracer process)
    and a single reader (the injector's drain task). Everything else only
    reads the latches and the diagnostics tail.
    """

    def __init__(
        self,
        pid: int,
        syscall: str,
        delay_s: float,
        argv: list[str] | None = None,
        tail_lines: int = 200,
    ) -> None:
        self.pid = pid
        self.syscall = syscall
        self.delay_s = delay_s
        self.argv = argv or []
        self.armed = Latch("armed")
        self.completed = Latch("completed")
        self.returncode: int | None = None
        self.bytes_seen = 0
        self.started_at = time.monotonic()

        self._state = SessionState.SPAWNED
        self._tail: deque[str] = deque(maxlen=tail_lines)
        self._partial = b""
        self._process: asyncio.subprocess.Process | None = None
        self._drain_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_armed(self) -> bool:
        return self.armed.is_set

    @property
    def is_completed(self) -> bool:
        return self.completed.is_set

    @property
    def tracer_pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def diagnostics(self) -> list[str]:
        """Most recent tracer output lines."""
        return list(self._tail)

    def bind(
        self,
        process: asyncio.subprocess.Process,
        drain_task: asyncio.Task[None] | None = None,
    ) -> None:
        """Attach the tracer process and (once armed) its drain task."""
        self._process = process
        if drain_task is not None:
            self._drain_task = drain_task

    def _transition(self, new_state: SessionState) -> None:
        if new_state not in SESSION_TRANSITIONS[self._state]:
            raise InvalidSessionTransition(
                f"invalid session transition {self._state.value} -> {new_state.value}",
                pid=self.pid,
            )
        self._state = new_state

    def mark_armed(self) -> None:
        """First byte observed: the tracer is attached."""
        self._transition(SessionState.ARMED)
        self.armed.fire()
        logger.info(
            "Tracer armed on pid %d after %.2fs",
            self.pid,
            time.monotonic() - self.started_at,
        )

    def mark_completed(self, returncode: int | None) -> None:
        """Tracer process exited and was reaped."""
        self._transition(SessionState.COMPLETED)
        self.returncode = returncode
        self.completed.fire()

    def feed(self, data: bytes) -> list[str]:
        """
        Record raw tracer output.

        Returns:
            Lines completed by this chunk
        """
        self.bytes_seen += len(data)
        buffered = self._partial + data
        *complete, self._partial = buffered.split(b"\n")
        lines = [line.decode(errors="replace").rstrip("\r") for line in complete]
        self._tail.extend(lines)
        return lines

    def flush(self) -> list[str]:
        """Return a trailing line without newline, if any."""
        if not self._partial:
            return []
        line = self._partial.decode(errors="replace")
        self._partial = b""
        self._tail.append(line)
        return [line]

    async def wait_armed(self) -> None:
        await self.armed.wait()

    async def wait_completed(self, timeout: float | None = None) -> int | None:
        """
        Wait for the tracer to exit.

        Returns:
            Tracer exit status

        Raises:
            TimeoutError: not completed within timeout
        """
        await asyncio.wait_for(self.completed.wait(), timeout)
        return self.returncode

    def raise_for_exit(self) -> None:
        """Raise TracerExitError if the tracer exited non-zero."""
        if self.returncode not in (None, 0):
            raise TracerExitError(
                f"tracer exited with status {self.returncode}",
                returncode=self.returncode,
                pid=self.pid,
                argv=self.argv,
                diagnostics=self.diagnostics[-20:],
            )

    async def aclose(self) -> None:
        """
        Stop the tracer if it is still running and wait until it is reaped
        and its output fully drained.
        """
        process = self._process
        if process is not None and process.returncode is None:
            logger.warning("Killing tracer %d still attached to pid %d", process.pid, self.pid)
            try:
                process.kill()
            except ProcessLookupError:
                pass
        if self._drain_task is not None:
            await self._drain_task
        elif process is not None and not self.is_completed:
            self.mark_completed(await process.wait())

    def to_summary(self) -> dict[str, Any]:
        """Serialize for reports."""
        return {
            "pid": self.pid,
            "tracer_pid": self.tracer_pid,
            "syscall": self.syscall,
            "delay_s": self.delay_s,
            "state": self._state.value,
            "returncode": self.returncode,
            "bytes_seen": self.bytes_seen,
            "argv": self.argv,
        }
