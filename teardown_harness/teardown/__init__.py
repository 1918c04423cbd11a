"""
Synchronized sandbox teardown.

Provides:
- TeardownRetryLoop and Deadline: bounded stop+remove retries
- CompletionWatchdog: slow-vs-hung adjudication with forced cleanup
"""

from teardown_harness.teardown.models import TeardownResult, WatchdogOutcome, WatchdogVerdict
from teardown_harness.teardown.retry import Deadline, TeardownRetryLoop
from teardown_harness.teardown.watchdog import CompletionWatchdog

__all__ = [
    "CompletionWatchdog",
    "Deadline",
    "TeardownResult",
    "TeardownRetryLoop",
    "WatchdogOutcome",
    "WatchdogVerdict",
]
