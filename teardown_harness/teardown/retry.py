"""
Sandbox teardown retry loop.

StopPodSandbox races with in-flight operations and is safe to repeat, so
a failed stop is retried immediately. A failed RemovePodSandbox backs off
before the whole pair is tried again. The deadline is checked before
every stop and every remove, so no call starts past it.
"""

import asyncio
import time
from collections.abc import Callable

from teardown_harness.errors import DeadlineExceededError, RuntimeServiceError
from teardown_harness.logging import get_logger
from teardown_harness.runtime.interface import RuntimeService
from teardown_harness.teardown.models import TeardownResult

logger = get_logger(__name__)

Clock = Callable[[], float]


class Deadline:
    """An absolute bound on a monotonic clock."""

    def __init__(self, expires_at: float, clock: Clock = time.monotonic) -> None:
        self.expires_at = expires_at
        self.started_at = clock()
        self._clock = clock

    @classmethod
    def after(cls, seconds: float, clock: Clock = time.monotonic) -> "Deadline":
        return cls(clock() + seconds, clock)

    def remaining(self) -> float:
        return self.expires_at - self._clock()

    def expired(self) -> bool:
        return self._clock() >= self.expires_at

    def elapsed(self) -> float:
        return self._clock() - self.started_at


class TeardownRetryLoop:
    """Repeats stop+remove on a sandbox until it is gone or the deadline passes."""

    def __init__(self, runtime: RuntimeService, backoff_s: float = 1.0) -> None:
        self._runtime = runtime
        self._backoff_s = backoff_s

    async def run(self, sandbox_id: str, deadline: Deadline) -> TeardownResult:
        """
        Stop and remove the sandbox.

        Returns:
            TeardownResult once RemovePodSandbox succeeded

        Raises:
            DeadlineExceededError: deadline reached before removal succeeded
        """
        attempts = 0
        stop_failures = 0
        remove_failures = 0

        def exceeded() -> DeadlineExceededError:
            return DeadlineExceededError(
                f"StopPodSandbox/RemovePodSandbox of {sandbox_id} did not complete "
                f"within {deadline.elapsed():.1f}s",
                sandbox_id=sandbox_id,
                attempts=attempts,
                stop_failures=stop_failures,
                remove_failures=remove_failures,
                elapsed_s=round(deadline.elapsed(), 3),
            )

        while True:
            if deadline.expired():
                raise exceeded()

            attempts += 1
            try:
                await self._runtime.stop_pod_sandbox(sandbox_id)
            except RuntimeServiceError as e:
                stop_failures += 1
                logger.warning("Failed to StopPodSandbox %s (attempt %d): %s", sandbox_id, attempts, e)
                # fakes and fast failures may not yield; let the tracer drain run
                await asyncio.sleep(0)
                continue

            # a slow stop may have used up the deadline
            if deadline.expired():
                raise exceeded()

            try:
                await self._runtime.remove_pod_sandbox(sandbox_id)
            except RuntimeServiceError as e:
                remove_failures += 1
                logger.warning("Failed to RemovePodSandbox %s (attempt %d): %s", sandbox_id, attempts, e)
                await asyncio.sleep(max(0.0, min(self._backoff_s, deadline.remaining())))
                continue

            result = TeardownResult(
                sandbox_id=sandbox_id,
                attempts=attempts,
                stop_failures=stop_failures,
                remove_failures=remove_failures,
                elapsed_s=round(deadline.elapsed(), 3),
            )
            logger.info(
                "PodSandbox %s removed after %d attempt(s) in %.1fs",
                sandbox_id,
                attempts,
                result.elapsed_s,
            )
            return result
