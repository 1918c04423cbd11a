"""
Syscall delay injection with strace(1).

Attaches strace to a live process tree and delays every entry into one
syscall, e.g. umount2, to simulate IO pressure (umount2 may force the
kernel to syncfs an overlay rootfs).

REF: https://man7.org/linux/man-pages/man1/strace.1.html
"""

import asyncio
import ctypes
import ctypes.util
import signal
import sys
from collections.abc import Callable

from teardown_harness.config import HarnessSettings
from teardown_harness.errors import TracerAttachmentFailure, TracerSpawnError
from teardown_harness.logging import get_logger
from teardown_harness.tracer.session import InjectionSession

logger = get_logger(__name__)
tracer_logger = get_logger("teardown_harness.tracer.output")

PR_SET_PDEATHSIG = 1
READ_CHUNK = 4096

OutputSink = Callable[[InjectionSession, str], None]


def _log_output(session: InjectionSession, line: str) -> None:
    tracer_logger.info("[strace %d] %s", session.pid, line)


def format_delay(delay_s: float) -> str:
    """strace delay value: whole seconds as 's', anything finer as 'us'."""
    if float(delay_s).is_integer():
        return f"{int(delay_s)}s"
    return f"{round(delay_s * 1_000_000)}us"


def build_tracer_argv(tool: str, pid: int, syscall: str, delay_s: float) -> list[str]:
    """
    Command line attaching the tracer.

    -f follows every thread and child; --detach-on=execve lets go of
    children that exec (runc and friends), so only the target's own code
    path is delayed.
    """
    return [
        tool,
        "-p", str(pid),
        "-f",
        "--detach-on=execve",
        f"--trace={syscall}",
        "-e", f"inject={syscall}:delay_enter={format_delay(delay_s)}",
    ]


def _kill_quietly(process: asyncio.subprocess.Process) -> None:
    try:
        process.kill()
    except ProcessLookupError:
        pass


def _parent_death_signal() -> Callable[[], None] | None:
    """
    preexec_fn delivering SIGKILL to the tracer if the harness dies, so no
    tracer stays attached to a live target. libc is loaded before the fork.
    """
    if not sys.platform.startswith("linux"):
        return None
    libc = ctypes.CDLL(ctypes.util.find_library("c"), use_errno=True)

    def _set_pdeathsig() -> None:
        if libc.prctl(PR_SET_PDEATHSIG, int(signal.SIGKILL), 0, 0, 0) != 0:
            raise OSError(ctypes.get_errno(), "prctl(PR_SET_PDEATHSIG) failed")

    return _set_pdeathsig


class DelayInjector:
    """
    Spawns the tracer and blocks until it is attached.

    Attachment is proven by the first byte on the tracer's combined
    stdout/stderr: strace prints its "attached" banner once ptrace has
    seized the target. A fixed sleep is not enough; starting the scenario
    earlier lets the syscall slip through untraced.
    """

    def __init__(
        self,
        settings: HarnessSettings,
        on_output: OutputSink | None = None,
    ) -> None:
        self._tool = settings.tracer_binary
        self._attach_timeout = settings.attach_timeout_s
        self._tail_lines = settings.diagnostics_tail_lines
        self._on_output = on_output or _log_output

    async def start(self, pid: int, syscall: str, delay_s: float) -> InjectionSession:
        """
        Attach the tracer to pid and return once it is armed.

        Raises:
            TracerSpawnError: pid is not a process id, or the tracer could
                not be started
            TracerAttachmentFailure: tracer closed its output, or produced
                none within the attach timeout
        """
        if pid <= 0:
            raise TracerSpawnError(f"refusing to trace pid {pid}", pid=pid)
        argv = build_tracer_argv(self._tool, pid, syscall, delay_s)
        session = InjectionSession(
            pid=pid,
            syscall=syscall,
            delay_s=delay_s,
            argv=argv,
            tail_lines=self._tail_lines,
        )

        logger.info("Injecting %ss delay into %s of pid %d", delay_s, syscall, pid)
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                preexec_fn=_parent_death_signal(),
            )
        except (OSError, ValueError) as e:
            raise TracerSpawnError(f"failed to start tracer: {e}", argv=argv) from e
        session.bind(process)

        first = await self._wait_first_byte(session, process)
        session.mark_armed()
        self._emit(session, session.feed(first))

        drain_task = asyncio.create_task(
            self._drain(session, process), name=f"tracer-drain-{pid}"
        )
        session.bind(process, drain_task)
        return session

    async def _wait_first_byte(
        self, session: InjectionSession, process: asyncio.subprocess.Process
    ) -> bytes:
        assert process.stdout is not None
        try:
            first = await asyncio.wait_for(process.stdout.read(1), self._attach_timeout)
        except asyncio.CancelledError:
            _kill_quietly(process)
            # reap before the cancellation propagates
            await asyncio.shield(process.wait())
            raise
        except TimeoutError:
            _kill_quietly(process)
            session.mark_completed(await process.wait())
            raise TracerAttachmentFailure(
                f"tracer produced no output within {self._attach_timeout}s",
                pid=session.pid,
                argv=session.argv,
            ) from None

        if not first:
            session.mark_completed(await process.wait())
            raise TracerAttachmentFailure(
                "tracer closed its output before attaching",
                pid=session.pid,
                argv=session.argv,
                returncode=session.returncode,
            )
        return first

    async def _drain(
        self, session: InjectionSession, process: asyncio.subprocess.Process
    ) -> None:
        """Forward remaining output, then reap the tracer and signal completion."""
        assert process.stdout is not None
        try:
            while True:
                chunk = await process.stdout.read(READ_CHUNK)
                if not chunk:
                    break
                self._emit(session, session.feed(chunk))
            self._emit(session, session.flush())
        finally:
            returncode = await process.wait()
            session.mark_completed(returncode)
            logger.info("Tracer on pid %d exited with status %d", session.pid, returncode)

    def _emit(self, session: InjectionSession, lines: list[str]) -> None:
        for line in lines:
            self._on_output(session, line)
