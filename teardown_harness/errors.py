"""
Exception taxonomy for the teardown harness.

Three families are kept apart so a report never confuses them:
- SetupError: shim addressing / connection / RPC problems while preparing
- InfrastructureError: the tracer (or the harness itself) misbehaved
- ScenarioFailure: the reproduced race, i.e. teardown did not finish in time
"""

from typing import Any


class HarnessError(Exception):
    """Base class for all harness errors."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        """Serialize for reports."""
        return {
            "error": type(self).__name__,
            "message": str(self),
            **self.context,
        }


# =============================================================================
# Setup
# =============================================================================


class SetupError(HarnessError):
    """Raised when the scenario cannot be prepared."""


class AddressResolutionError(SetupError):
    """Raised when no shim socket address can be derived."""


class ShimConnectionError(SetupError, ConnectionError):
    """
    Raised when the shim socket cannot be dialed (shim likely gone).

    Also a builtin ConnectionError, so generic socket handling catches it.
    """


class RPCError(SetupError):
    """Raised when a shim RPC fails."""


class RPCTransportError(RPCError):
    """The transport is broken: EOF, reset or timeout. The shim is likely dead."""


class RPCRejectedError(RPCError):
    """The shim answered but rejected the call."""

    def __init__(self, message: str, code: int, **context: Any) -> None:
        super().__init__(message, code=code, **context)
        self.code = code


# =============================================================================
# Harness infrastructure
# =============================================================================


class InfrastructureError(HarnessError):
    """Raised when the harness or its tools misbehave (not the race under test)."""


class TracerSpawnError(InfrastructureError):
    """Raised when the tracer process cannot be started."""


class TracerAttachmentFailure(InfrastructureError):
    """Raised when the tracer never proves attachment (no output, or timeout)."""


class TracerExitError(InfrastructureError):
    """Raised when the tracer exited with a non-zero status."""

    def __init__(self, message: str, returncode: int, **context: Any) -> None:
        super().__init__(message, returncode=returncode, **context)
        self.returncode = returncode


class InvalidSessionTransition(InfrastructureError):
    """Raised when an injection session signal would fire twice or out of order."""


# =============================================================================
# Orchestration service
# =============================================================================


class RuntimeServiceError(HarnessError):
    """Raised when a CRI call fails. Treated as retryable by the teardown loop."""

    def __init__(
        self,
        message: str,
        command: list[str] | None = None,
        returncode: int | None = None,
        stderr: str = "",
    ) -> None:
        super().__init__(message, command=command, returncode=returncode, stderr=stderr)
        self.command = command
        self.returncode = returncode
        self.stderr = stderr


# =============================================================================
# Scenario outcome
# =============================================================================


class ScenarioFailure(HarnessError):
    """The race under test was reproduced."""

    @property
    def shim_pid(self) -> int | None:
        return self.context.get("shim_pid")


class DeadlineExceededError(ScenarioFailure):
    """StopPodSandbox/RemovePodSandbox did not complete within the bound."""


class TracerNotExitedError(ScenarioFailure):
    """The delayed syscall never returned: the tracer did not exit within the grace period."""


class ScenarioSkipped(HarnessError):
    """The environment cannot run the scenario (e.g. unexpected default runtime)."""
