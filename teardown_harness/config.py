"""
Configuration management for the teardown harness.

Uses pydantic-settings for type-safe environment variable handling.
Every knob of the scenario (timings, endpoints, tool paths) can be
overridden with a HARNESS_* environment variable or a local .env file.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class HarnessSettings(BaseSettings):
    """
    Harness settings loaded from environment variables.

    Defaults reproduce the original scenario: a 12 second delay on
    umount2, a 3 minute teardown bound and a 15 second grace period.
    """

    model_config = SettingsConfigDict(
        env_prefix="HARNESS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # containerd / shim addressing
    namespace: str = Field(
        default="k8s.io",
        description="containerd namespace the CRI plugin creates sandboxes in",
    )
    containerd_endpoint: str = Field(
        default="/run/containerd/containerd.sock",
        description="containerd GRPC address, part of the shim socket hash",
    )
    socket_root: Path = Field(
        default=Path("/run/containerd"),
        description="Directory holding the per-shim 's/' socket directory",
    )

    # CRI access through crictl
    runtime_endpoint: str = Field(
        default="unix:///run/containerd/containerd.sock",
        description="CRI runtime endpoint handed to crictl",
    )
    runtime_handler: str = Field(
        default="",
        description="CRI runtime handler for RunPodSandbox (empty = default)",
    )
    crictl_binary: str = Field(default="crictl", description="crictl executable")
    crictl_timeout_s: int = Field(
        default=10,
        description="Per-call timeout passed to crictl",
        ge=1,
        le=600,
    )
    expected_runtime_suffix: str = Field(
        default="runc.v2",
        description="Scenario is skipped unless the default runtime type ends with this",
    )

    # Fault injection
    tracer_binary: str = Field(default="strace", description="Syscall tracer executable")
    syscall: str = Field(default="umount2", description="Syscall to delay")
    delay_s: float = Field(
        default=12,
        description="Injected entry delay per matching syscall (seconds)",
        gt=0,
        le=3600,
    )
    attach_timeout_s: float = Field(
        default=30,
        description="Upper bound on waiting for the tracer to attach",
        gt=0,
        le=600,
    )

    # Teardown / adjudication timings
    teardown_deadline_s: float = Field(
        default=180,
        description="Overall bound for the StopPodSandbox/RemovePodSandbox loop",
        gt=0,
    )
    retry_backoff_s: float = Field(
        default=1.0,
        description="Sleep after a failed RemovePodSandbox",
        ge=0,
        le=60,
    )
    grace_period_s: float = Field(
        default=15,
        description="Extra wait for the tracer to exit once the sandbox is removed",
        gt=0,
        le=600,
    )
    reap_timeout_s: float = Field(
        default=30,
        description="Bound on waiting for the tracer after the shim was killed",
        gt=0,
        le=600,
    )
    rpc_timeout_s: float = Field(
        default=5,
        description="Timeout for a single shim RPC",
        gt=0,
        le=120,
    )

    # Fixtures
    pause_image: str = Field(
        default="registry.k8s.io/pause:3.9",
        description="Image used for the container started inside the sandbox",
    )
    sandbox_name: str = Field(default="sandbox", description="Pod sandbox name")
    sandbox_namespace: str = Field(default="issue7496", description="Pod namespace prefix")
    container_name: str = Field(default="pausecontainer", description="Container name")

    # Diagnostics / logging
    diagnostics_tail_lines: int = Field(
        default=200,
        description="Tracer output lines kept for failure reports",
        ge=1,
        le=100000,
    )
    log_level: str = Field(default="INFO", description="Logging level")
    log_json: bool = Field(default=False, description="Emit JSON formatted log lines")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return upper_v

    @field_validator("syscall")
    @classmethod
    def validate_syscall(cls, v: str) -> str:
        """Syscall names are plain identifiers (no strace qualifiers)."""
        if not v or not v.replace("_", "").isalnum():
            raise ValueError(f"Invalid syscall name: {v!r}")
        return v

    def get_redacted_config(self) -> dict[str, str | int | float | bool]:
        """
        Get configuration dict safe for logging and reports.
        """
        return {
            "namespace": self.namespace,
            "containerd_endpoint": self.containerd_endpoint,
            "runtime_endpoint": self.runtime_endpoint,
            "runtime_handler": self.runtime_handler,
            "tracer_binary": self.tracer_binary,
            "syscall": self.syscall,
            "delay_s": self.delay_s,
            "teardown_deadline_s": self.teardown_deadline_s,
            "grace_period_s": self.grace_period_s,
            "attach_timeout_s": self.attach_timeout_s,
            "pause_image": self.pause_image,
            "log_level": self.log_level,
        }


@lru_cache
def get_settings() -> HarnessSettings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure single instance throughout the process.
    """
    return HarnessSettings()
