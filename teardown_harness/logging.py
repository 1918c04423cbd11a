"""
Logging for the teardown harness.

Every module logs through get_logger(__name__). setup_logging() installs
two handlers on the root logger:

- stdout, as readable text or as one JSON object per line for CI
- a bounded ring of recent records, copied into failure reports

The run id of the scenario in progress is kept in a ContextVar, so lines
emitted from tracer drain tasks carry it too.
"""

import json
import logging
import sys
from collections import deque
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

TEXT_FORMAT = "%(timestamp)s | %(levelname)-8s | %(name)s | %(run_id)s%(message)s"
RING_CAPACITY = 1000

current_run_id: ContextVar[str | None] = ContextVar("current_run_id", default=None)


def _stamp(record: logging.LogRecord) -> None:
    """Attach timestamp and run id attributes used by both handlers."""
    if not hasattr(record, "timestamp"):
        record.timestamp = datetime.fromtimestamp(record.created, UTC).isoformat()
    run_id = current_run_id.get()
    record.run_id = f"[{run_id}] " if run_id else ""
    record.run_id_raw = run_id


class HarnessFormatter(logging.Formatter):
    """
    Text or JSON formatter.

    In JSON mode the line is built with json.dumps, so quotes, backslashes
    and newlines in traced syscall output cannot break the object.
    """

    def __init__(self, fmt: str | None = None, json_output: bool = False) -> None:
        super().__init__(fmt or TEXT_FORMAT)
        self.json_output = json_output

    def format(self, record: logging.LogRecord) -> str:
        _stamp(record)
        if not self.json_output:
            return super().format(record)

        entry: dict[str, Any] = {
            "timestamp": record.timestamp,
            "level": record.levelname,
            "module": record.name,
            "run_id": record.run_id_raw,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry)


class InMemoryHandler(logging.Handler):
    """Keeps the last `capacity` records as plain dicts."""

    def __init__(self, capacity: int = RING_CAPACITY):
        super().__init__()
        self.logs: deque[dict[str, Any]] = deque(maxlen=capacity)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            _stamp(record)
            self.logs.append(
                {
                    "timestamp": record.timestamp,
                    "level": record.levelname,
                    "level_no": record.levelno,
                    "logger": record.name,
                    "run_id": record.run_id_raw,
                    "message": record.getMessage(),
                }
            )
        except Exception:
            self.handleError(record)


_ring = InMemoryHandler()


def setup_logging(level: str = "INFO", json_output: bool = False) -> logging.Logger:
    """
    Configure the root logger.

    Calling it again replaces the previous handlers, so the CLI can apply
    flag overrides after settings are loaded.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(numeric_level)

    stream = logging.StreamHandler(sys.stdout)
    stream.setFormatter(HarnessFormatter(json_output=json_output))
    _ring.setLevel(numeric_level)
    for handler in (stream, _ring):
        root.addHandler(handler)

    # slow-callback warnings at DEBUG drown tracer output
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    return root


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def get_in_memory_logs(level: str = "INFO", limit: int = 50) -> list[dict[str, Any]]:
    """Most recent ring entries at or above level, oldest first."""
    threshold = logging.getLevelName(level.upper())
    if not isinstance(threshold, int):
        threshold = logging.INFO
    return [entry for entry in _ring.logs if entry["level_no"] >= threshold][-limit:]


def set_run_id(run_id: str) -> None:
    current_run_id.set(run_id)


def clear_run_id() -> None:
    current_run_id.set(None)
