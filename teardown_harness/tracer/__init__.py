"""
Fault injection through an external syscall tracer.

Provides:
- DelayInjector: attach strace and block until armed
- InjectionSession: armed/completed latches and diagnostics tail
"""

from teardown_harness.tracer.injector import DelayInjector, build_tracer_argv
from teardown_harness.tracer.session import InjectionSession, Latch, SessionState

__all__ = [
    "DelayInjector",
    "InjectionSession",
    "Latch",
    "SessionState",
    "build_tracer_argv",
]
