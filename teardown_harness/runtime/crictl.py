"""
CRI access through crictl(1).

Every call runs crictl as an asyncio subprocess against the configured
runtime endpoint. Configs are handed over as JSON files.
"""

import asyncio
import json
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from teardown_harness.config import HarnessSettings
from teardown_harness.errors import RuntimeServiceError
from teardown_harness.logging import get_logger
from teardown_harness.runtime.fixtures import ContainerConfig, PodSandboxConfig
from teardown_harness.runtime.interface import RuntimeService

logger = get_logger(__name__)


@dataclass(frozen=True)
class CrictlResult:
    """Outcome of one crictl invocation."""

    argv: list[str]
    returncode: int
    stdout: str
    stderr: str


class CrictlRuntimeService(RuntimeService):
    """RuntimeService backed by the crictl CLI."""

    def __init__(self, settings: HarnessSettings) -> None:
        self._binary = settings.crictl_binary
        self._endpoint = settings.runtime_endpoint
        self._timeout_s = settings.crictl_timeout_s

    def _base_argv(self) -> list[str]:
        return [
            self._binary,
            "--runtime-endpoint", self._endpoint,
            "--image-endpoint", self._endpoint,
            "--timeout", f"{self._timeout_s}s",
        ]

    async def _run(self, *args: str, check: bool = True) -> CrictlResult:
        argv = [*self._base_argv(), *args]
        logger.debug("crictl %s", " ".join(args))
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise RuntimeServiceError(f"failed to run crictl: {e}", command=argv) from e

        stdout, stderr = await process.communicate()
        assert process.returncode is not None
        result = CrictlResult(
            argv=argv,
            returncode=process.returncode,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
        )
        if check and result.returncode != 0:
            raise RuntimeServiceError(
                f"crictl {args[0]} failed: {result.stderr.strip() or result.stdout.strip()}",
                command=argv,
                returncode=result.returncode,
                stderr=result.stderr,
            )
        return result

    @contextmanager
    def _config_files(self, **payloads: dict[str, Any]) -> Iterator[dict[str, str]]:
        """Write each payload to <name>.json in a throwaway directory."""
        with tempfile.TemporaryDirectory(prefix="teardown-harness-") as tmpdir:
            paths: dict[str, str] = {}
            for name, payload in payloads.items():
                path = Path(tmpdir) / f"{name}.json"
                path.write_text(json.dumps(payload))
                paths[name] = str(path)
            yield paths

    async def run_pod_sandbox(self, config: PodSandboxConfig, runtime_handler: str = "") -> str:
        with self._config_files(pod=config.to_crictl()) as paths:
            args = ["runp"]
            if runtime_handler:
                args += ["--runtime", runtime_handler]
            result = await self._run(*args, paths["pod"])
        sandbox_id = result.stdout.strip()
        if not sandbox_id:
            raise RuntimeServiceError("crictl runp returned no sandbox id", command=result.argv)
        logger.info("Pod sandbox %s running", sandbox_id)
        return sandbox_id

    async def stop_pod_sandbox(self, sandbox_id: str) -> None:
        await self._run("stopp", sandbox_id)

    async def remove_pod_sandbox(self, sandbox_id: str) -> None:
        await self._run("rmp", sandbox_id)

    async def create_container(
        self,
        sandbox_id: str,
        config: ContainerConfig,
        sandbox_config: PodSandboxConfig,
    ) -> str:
        with self._config_files(
            container=config.to_crictl(), pod=sandbox_config.to_crictl()
        ) as paths:
            result = await self._run("create", sandbox_id, paths["container"], paths["pod"])
        container_id = result.stdout.strip()
        if not container_id:
            raise RuntimeServiceError("crictl create returned no container id", command=result.argv)
        return container_id

    async def start_container(self, container_id: str) -> None:
        await self._run("start", container_id)

    async def image_exists(self, image: str) -> bool:
        result = await self._run("inspecti", "-q", image, check=False)
        return result.returncode == 0

    async def pull_image(self, image: str) -> None:
        logger.info("Pulling image %s", image)
        await self._run("pull", image)

    async def default_runtime_type(self) -> str:
        result = await self._run("info")
        try:
            info = json.loads(result.stdout)
            containerd_cfg = info["config"]["containerd"]
            name = containerd_cfg["defaultRuntimeName"]
            return str(containerd_cfg["runtimes"][name]["runtimeType"])
        except (ValueError, KeyError, TypeError) as e:
            raise RuntimeServiceError(
                f"cannot determine default runtime from crictl info: {e!r}",
                command=result.argv,
            ) from e
