"""
Container orchestration boundary (CRI).

Provides:
- RuntimeService: contract for the calls the scenario makes
- CrictlRuntimeService: implementation over the crictl CLI
- Pod sandbox / container config builders
"""

from teardown_harness.runtime.crictl import CrictlRuntimeService
from teardown_harness.runtime.fixtures import ContainerConfig, PodSandboxConfig
from teardown_harness.runtime.interface import RuntimeService

__all__ = [
    "ContainerConfig",
    "CrictlRuntimeService",
    "PodSandboxConfig",
    "RuntimeService",
]
