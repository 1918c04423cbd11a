"""
Command line entry point.

Usage:
    teardown-harness run                    # full scenario with defaults
    teardown-harness run --delay 12 --deadline 180 --grace 15
    teardown-harness address <sandbox-id>   # print the shim socket address

Exit codes:
    0 passed, 1 race reproduced, 2 harness/environment failure, 3 skipped
"""

import argparse
import asyncio
import json
import sys
from typing import Any

from teardown_harness.config import HarnessSettings, get_settings
from teardown_harness.errors import HarnessError, ScenarioFailure, ScenarioSkipped
from teardown_harness.logging import get_logger, setup_logging
from teardown_harness.runtime.crictl import CrictlRuntimeService
from teardown_harness.scenario import ShimTeardownScenario
from teardown_harness.shim.connector import ShimConnector

logger = get_logger(__name__)

EXIT_PASSED = 0
EXIT_SCENARIO_FAILED = 1
EXIT_INFRASTRUCTURE = 2
EXIT_SKIPPED = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="teardown-harness",
        description="Reproduce the sandbox teardown / shim kill race under injected syscall delay",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run the full scenario")
    run.add_argument("--delay", type=float, help="Injected syscall delay in seconds")
    run.add_argument("--deadline", type=float, help="Teardown deadline in seconds")
    run.add_argument("--grace", type=float, help="Grace period for the tracer to exit")
    run.add_argument("--syscall", help="Syscall to delay")
    run.add_argument("--runtime-handler", help="CRI runtime handler for the sandbox")
    run.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")

    address = sub.add_parser("address", help="Print the shim socket address of a sandbox")
    address.add_argument("sandbox_id")

    return parser


def apply_overrides(settings: HarnessSettings, args: argparse.Namespace) -> HarnessSettings:
    """Return settings with command line flags applied."""
    updates: dict[str, Any] = {}
    for flag, field in (
        ("delay", "delay_s"),
        ("deadline", "teardown_deadline_s"),
        ("grace", "grace_period_s"),
        ("syscall", "syscall"),
        ("runtime_handler", "runtime_handler"),
    ):
        value = getattr(args, flag, None)
        if value is not None:
            updates[field] = value
    if getattr(args, "json_logs", False):
        updates["log_json"] = True
    if not updates:
        return settings
    return HarnessSettings.model_validate({**settings.model_dump(), **updates})


async def run_scenario(settings: HarnessSettings) -> int:
    scenario = ShimTeardownScenario(settings, CrictlRuntimeService(settings))
    try:
        report = await scenario.run()
    except ScenarioSkipped as e:
        logger.warning("Skipped: %s", e)
        _print_json(e.to_dict())
        return EXIT_SKIPPED
    except ScenarioFailure as e:
        logger.error("Race reproduced: %s (shim pid %s)", e, e.shim_pid)
        _print_json(e.to_dict())
        return EXIT_SCENARIO_FAILED
    except HarnessError as e:
        logger.error("Harness infrastructure failure: %s", e)
        _print_json(e.to_dict())
        return EXIT_INFRASTRUCTURE

    _print_json(report.model_dump(mode="json"))
    return EXIT_PASSED


def _print_json(payload: dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2, default=str))


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = apply_overrides(get_settings(), args)
    setup_logging(settings.log_level, json_output=settings.log_json)

    if args.command == "address":
        try:
            print(ShimConnector(settings).resolve_address(args.sandbox_id))
        except HarnessError as e:
            print(f"error: {e}", file=sys.stderr)
            return EXIT_INFRASTRUCTURE
        return EXIT_PASSED

    return asyncio.run(run_scenario(settings))
