"""
Shim teardown race scenario.

Reproduces containerd issue 7496 (and 8931): while umount2 inside the
sandbox's shim is artificially slow, StopPodSandbox/RemovePodSandbox must
still finish within a bound, and once the sandbox is gone the delayed
syscall must return so the tracer can exit.

Control flow:
    shim pid -> attach tracer (blocks until armed) -> start a container ->
    stop/remove loop under a deadline -> watchdog adjudication
"""

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field

from teardown_harness.config import HarnessSettings
from teardown_harness.errors import (
    DeadlineExceededError,
    HarnessError,
    RuntimeServiceError,
    ScenarioSkipped,
    TracerNotExitedError,
)
from teardown_harness.logging import clear_run_id, get_in_memory_logs, get_logger, set_run_id
from teardown_harness.runtime.fixtures import ContainerConfig, PodSandboxConfig
from teardown_harness.runtime.interface import RuntimeService
from teardown_harness.shim.connector import ShimConnector
from teardown_harness.teardown.models import TeardownResult, WatchdogVerdict
from teardown_harness.teardown.retry import Deadline, TeardownRetryLoop
from teardown_harness.teardown.watchdog import CompletionWatchdog
from teardown_harness.tracer.injector import DelayInjector
from teardown_harness.tracer.session import InjectionSession

logger = get_logger(__name__)


def generate_run_id(prefix: str = "repro") -> str:
    """
    Generate a unique run ID.

    Format: {prefix}_{timestamp}_{uuid8}
    Example: repro_20240115_143022_a1b2c3d4
    """
    timestamp = datetime.now(UTC).strftime("%Y%m%d_%H%M%S")
    return f"{prefix}_{timestamp}_{uuid4().hex[:8]}"


class ScenarioReport(BaseModel):
    """Outcome of one successful scenario run."""

    run_id: str
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None
    config: dict[str, Any] = Field(default_factory=dict)
    sandbox_id: str | None = None
    container_id: str | None = None
    shim_pid: int | None = None
    teardown: TeardownResult | None = None
    verdict: WatchdogVerdict | None = None
    session: dict[str, Any] = Field(default_factory=dict)
    diagnostics: list[str] = Field(default_factory=list)
    passed: bool = False


class ShimTeardownScenario:
    """Drives the scenario end to end. Collaborators are injectable for tests."""

    def __init__(
        self,
        settings: HarnessSettings,
        runtime: RuntimeService,
        connector: ShimConnector | None = None,
        injector: DelayInjector | None = None,
        watchdog: CompletionWatchdog | None = None,
    ) -> None:
        self._settings = settings
        self._runtime = runtime
        self._connector = connector or ShimConnector(settings)
        self._injector = injector or DelayInjector(settings)
        self._watchdog = watchdog or CompletionWatchdog.from_settings(settings)
        self._teardown = TeardownRetryLoop(runtime, backoff_s=settings.retry_backoff_s)

    async def run(self) -> ScenarioReport:
        """
        Run the scenario.

        Returns:
            ScenarioReport with passed=True

        Raises:
            ScenarioSkipped: default runtime is not the expected one
            DeadlineExceededError / TracerNotExitedError: race reproduced
            InfrastructureError: tracer misbehaved
            SetupError / RuntimeServiceError: environment problem
        """
        report = ScenarioReport(
            run_id=generate_run_id(),
            config=self._settings.get_redacted_config(),
        )
        set_run_id(report.run_id)
        try:
            return await self._run(report)
        finally:
            clear_run_id()

    async def _check_runtime(self) -> None:
        logger.info("Checking CRI config's default runtime")
        runtime_type = await self._runtime.default_runtime_type()
        if not runtime_type.endswith(self._settings.expected_runtime_suffix):
            raise ScenarioSkipped(
                f"default runtime should be {self._settings.expected_runtime_suffix}, "
                f"but it's not: {runtime_type}",
                runtime_type=runtime_type,
            )

    async def _run(self, report: ScenarioReport) -> ScenarioReport:
        settings = self._settings
        await self._check_runtime()

        logger.info("Create a pod config and run sandbox container")
        sandbox_config = PodSandboxConfig.build(settings.sandbox_name, settings.sandbox_namespace)
        sandbox_id = await self._runtime.run_pod_sandbox(sandbox_config, settings.runtime_handler)
        report.sandbox_id = sandbox_id

        session: InjectionSession | None = None
        teardown_started = False
        connection = None
        try:
            connection = await self._connector.connect(sandbox_id)
            shim_pid = await connection.get_process_id()
            report.shim_pid = shim_pid

            logger.info(
                "[shim pid: %d]: Injecting %s seconds delay to %s syscall",
                shim_pid,
                settings.delay_s,
                settings.syscall,
            )
            session = await self._injector.start(shim_pid, settings.syscall, settings.delay_s)

            logger.info("Create a container config and run container in a pod")
            await self._runtime.ensure_image_exists(settings.pause_image)
            container_config = ContainerConfig.build(settings.container_name, settings.pause_image)
            container_id = await self._runtime.create_container(
                sandbox_id, container_config, sandbox_config
            )
            report.container_id = container_id
            await self._runtime.start_container(container_id)

            logger.info("Start to StopPodSandbox and RemovePodSandbox")
            teardown_started = True
            try:
                report.teardown = await self._teardown.run(
                    sandbox_id, Deadline.after(settings.teardown_deadline_s)
                )
            except DeadlineExceededError as e:
                e.context.update(self._failure_context(report, session))
                raise

            logger.info(
                "PodSandbox %s has been deleted and start to wait for strace exit", sandbox_id
            )
            verdict = await self._watchdog.adjudicate(session, connection)
            report.verdict = verdict
            if verdict.hung:
                raise TracerNotExitedError(
                    "strace doesn't exit in time",
                    liveness_error=verdict.liveness_error,
                    killed=verdict.killed,
                    kill_target=verdict.kill_target,
                    **self._failure_context(report, session),
                )
            session.raise_for_exit()

            report.passed = True
            return report
        except HarnessError:
            if not teardown_started:
                await self._remove_sandbox_quietly(sandbox_id)
            raise
        finally:
            if session is not None:
                await session.aclose()
                report.session = session.to_summary()
                report.diagnostics = session.diagnostics
            if connection is not None:
                await connection.close()
            report.completed_at = datetime.now(UTC)

    def _failure_context(
        self, report: ScenarioReport, session: InjectionSession
    ) -> dict[str, Any]:
        return {
            "run_id": report.run_id,
            "sandbox_id": report.sandbox_id,
            "shim_pid": report.shim_pid,
            "diagnostics": session.diagnostics[-50:],
            "logs": [entry["message"] for entry in get_in_memory_logs("WARNING", 20)],
        }

    async def _remove_sandbox_quietly(self, sandbox_id: str) -> None:
        """Best-effort cleanup when the scenario failed before teardown."""
        try:
            await self._runtime.stop_pod_sandbox(sandbox_id)
            await self._runtime.remove_pod_sandbox(sandbox_id)
        except RuntimeServiceError as e:
            logger.warning("Cleanup of sandbox %s failed: %s", sandbox_id, e)
