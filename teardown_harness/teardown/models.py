"""
Result models for teardown and adjudication.

All models are Pydantic-based so reports serialize straight to JSON.
"""

from enum import Enum

from pydantic import BaseModel, Field


class TeardownResult(BaseModel):
    """Outcome of a successful stop+remove loop."""

    sandbox_id: str
    attempts: int = Field(ge=1, description="stop/remove pairs started")
    stop_failures: int = 0
    remove_failures: int = 0
    elapsed_s: float = 0.0


class WatchdogOutcome(str, Enum):
    """How the injection session resolved."""

    COMPLETED = "COMPLETED"  # tracer exited on its own: delayed syscall returned
    HUNG = "HUNG"  # grace period elapsed first: shim was force-terminated


class WatchdogVerdict(BaseModel):
    """CompletionWatchdog adjudication."""

    outcome: WatchdogOutcome
    shim_pid: int
    waited_s: float
    liveness_pid: int | None = None
    liveness_error: str | None = None
    killed: bool = False
    kill_target: int | None = None
    kill_error: str | None = None
    tracer_returncode: int | None = None
    tracer_force_stopped: bool = False

    @property
    def hung(self) -> bool:
        return self.outcome == WatchdogOutcome.HUNG
