"""
Teardown Harness

A deterministic fault-injection harness reproducing the race between
asynchronous sandbox teardown and forced termination of its shim:
- Attaches strace to a live shim and delays one syscall
- Gates the scenario on tracer attachment
- Retries StopPodSandbox/RemovePodSandbox under a deadline
- Adjudicates "slow" versus "hung" and cleans up the shim
"""

__version__ = "0.1.0"

from teardown_harness.config import HarnessSettings, get_settings

__all__ = ["__version__", "HarnessSettings", "get_settings"]
