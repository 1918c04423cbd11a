"""
Pytest configuration and shared fixtures.
"""

import os
import shutil
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest

from teardown_harness.config import HarnessSettings, get_settings
from tests.fixtures.fake_runtime import FakeRuntimeService


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Ensure no local HARNESS_* overrides leak into tests."""
    for var in list(os.environ):
        if var.startswith("HARNESS_"):
            monkeypatch.delenv(var, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def short_tmp() -> Generator[Path, None, None]:
    """
    Short temporary directory.

    Unix socket paths are limited to ~108 bytes and shim sockets are named
    by a 64 character digest, so pytest's tmp_path is too deep.
    """
    path = Path(tempfile.mkdtemp(prefix="th-", dir="/tmp"))
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def settings(short_tmp: Path) -> HarnessSettings:
    """Settings with timings shrunk for tests."""
    return HarnessSettings(
        socket_root=short_tmp,
        containerd_endpoint="/run/containerd/containerd.sock",
        delay_s=0.2,
        attach_timeout_s=2,
        teardown_deadline_s=5,
        retry_backoff_s=0.01,
        grace_period_s=2,
        reap_timeout_s=2,
        rpc_timeout_s=1,
    )


@pytest.fixture
def fake_runtime() -> FakeRuntimeService:
    return FakeRuntimeService()
