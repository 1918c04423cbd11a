"""
Completion watchdog.

Once the sandbox is gone the delayed syscall should return and the tracer
should exit on its own. The watchdog races that against a grace period:

- tracer exits first: the scenario passed, nothing else to do
- grace period wins: the shim is stuck. Check it over RPC (an error is the
  expected, informational answer), SIGKILL its process group, then still
  wait for the tracer so it is reaped and its output fully drained.
"""

import asyncio
import os
import signal
import time
from collections.abc import Callable

from teardown_harness.config import HarnessSettings
from teardown_harness.errors import RPCError
from teardown_harness.logging import get_logger
from teardown_harness.shim.connector import ShimConnection
from teardown_harness.teardown.models import WatchdogOutcome, WatchdogVerdict
from teardown_harness.tracer.session import InjectionSession

logger = get_logger(__name__)

KillFunc = Callable[[int, int], None]


class CompletionWatchdog:
    """Adjudicates "slow" versus "hung" for one injection session."""

    def __init__(
        self,
        grace_period_s: float,
        reap_timeout_s: float = 30.0,
        kill: KillFunc = os.kill,
    ) -> None:
        self._grace_period_s = grace_period_s
        self._reap_timeout_s = reap_timeout_s
        self._kill = kill

    @classmethod
    def from_settings(cls, settings: HarnessSettings, kill: KillFunc = os.kill) -> "CompletionWatchdog":
        return cls(
            grace_period_s=settings.grace_period_s,
            reap_timeout_s=settings.reap_timeout_s,
            kill=kill,
        )

    async def adjudicate(
        self,
        session: InjectionSession,
        connection: ShimConnection | None,
    ) -> WatchdogVerdict:
        """
        Wait for the session to complete, escalating after the grace period.

        Returns:
            WatchdogVerdict; outcome HUNG means the race was reproduced
        """
        started = time.monotonic()
        try:
            returncode = await session.wait_completed(self._grace_period_s)
        except TimeoutError:
            pass
        else:
            return WatchdogVerdict(
                outcome=WatchdogOutcome.COMPLETED,
                shim_pid=session.pid,
                waited_s=round(time.monotonic() - started, 3),
                tracer_returncode=returncode,
            )

        logger.error(
            "Tracer on shim %d did not exit within %.1fs grace period",
            session.pid,
            self._grace_period_s,
        )
        verdict = WatchdogVerdict(
            outcome=WatchdogOutcome.HUNG,
            shim_pid=session.pid,
            waited_s=round(time.monotonic() - started, 3),
        )

        verdict.liveness_pid, verdict.liveness_error = await self._check_liveness(connection)
        self._force_terminate(session.pid, verdict)

        try:
            verdict.tracer_returncode = await session.wait_completed(self._reap_timeout_s)
        except TimeoutError:
            logger.error(
                "Tracer still running %.1fs after killing shim %d, stopping it",
                self._reap_timeout_s,
                session.pid,
            )
            verdict.tracer_force_stopped = True
            await session.aclose()
            verdict.tracer_returncode = session.returncode
        return verdict

    async def _check_liveness(
        self, connection: ShimConnection | None
    ) -> tuple[int | None, str | None]:
        """Liveness RPC. Failure here confirms the shim is unreachable."""
        if connection is None:
            return None, "no shim connection"
        try:
            pid = await connection.get_process_id()
        except RPCError as e:
            logger.info("Shim liveness check failed as expected: %s", e)
            return None, f"{type(e).__name__}: {e}"
        logger.warning("Shim still answers Connect (pid %d) although its tracer is stuck", pid)
        return pid, None

    def _force_terminate(self, pid: int, verdict: WatchdogVerdict) -> None:
        """SIGKILL the shim's process group, or the shim alone if it leads none."""
        if pid <= 0:
            # kill(0) and kill(-1) would hit the harness itself
            verdict.kill_error = f"refusing to signal pid {pid}"
            logger.error("Not killing shim: %s", verdict.kill_error)
            return
        logger.warning("Cleaning up shim (pid: %d) with SIGKILL", pid)
        for target in (-pid, pid):
            try:
                self._kill(target, signal.SIGKILL)
            except ProcessLookupError as e:
                verdict.kill_error = f"{target}: {e}"
                continue
            except PermissionError as e:
                verdict.kill_error = f"{target}: {e}"
                logger.error("Not permitted to kill shim %d: %s", pid, e)
                return
            verdict.killed = True
            verdict.kill_target = target
            verdict.kill_error = None
            return
        logger.warning("Shim %d already gone: %s", pid, verdict.kill_error)
