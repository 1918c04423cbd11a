"""
Fixtures for chaos scenarios.
"""

from collections.abc import Callable
from pathlib import Path

import pytest

from teardown_harness.config import HarnessSettings
from teardown_harness.scenario import ShimTeardownScenario
from teardown_harness.shim.address import dial_path
from teardown_harness.shim.connector import ShimConnector
from teardown_harness.teardown.watchdog import CompletionWatchdog
from tests.fixtures.fake_runtime import FakeRuntimeService


class KillRecorder:
    """os.kill stand-in; the fake shim has no real process to signal."""

    def __init__(self) -> None:
        self.calls: list[tuple[int, int]] = []

    def __call__(self, pid: int, sig: int) -> None:
        self.calls.append((pid, sig))


@pytest.fixture
def kill_recorder() -> KillRecorder:
    return KillRecorder()


@pytest.fixture
def shim_socket(settings: HarnessSettings, fake_runtime: FakeRuntimeService) -> Path:
    """Where the connector will dial the fake runtime's sandbox."""
    return Path(dial_path(ShimConnector(settings).resolve_address(fake_runtime.sandbox_id)))


@pytest.fixture
def make_scenario(
    settings: HarnessSettings,
    fake_runtime: FakeRuntimeService,
    kill_recorder: KillRecorder,
) -> Callable[..., ShimTeardownScenario]:
    """Build a scenario around the fake runtime with a given tracer and overrides."""

    def _make(tracer: Path, **updates: object) -> ShimTeardownScenario:
        scenario_settings = settings.model_copy(update={"tracer_binary": str(tracer), **updates})
        return ShimTeardownScenario(
            scenario_settings,
            fake_runtime,
            watchdog=CompletionWatchdog.from_settings(scenario_settings, kill=kill_recorder),
        )

    return _make
