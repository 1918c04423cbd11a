"""
Tests for CrictlRuntimeService against a fake crictl script.
"""

from pathlib import Path

import pytest

from teardown_harness.config import HarnessSettings
from teardown_harness.errors import RuntimeServiceError
from teardown_harness.runtime.crictl import CrictlRuntimeService
from teardown_harness.runtime.fixtures import ContainerConfig, PodSandboxConfig
from tests.fixtures.fake_crictl import FakeCrictl


@pytest.fixture
def crictl(tmp_path: Path) -> FakeCrictl:
    return FakeCrictl(tmp_path)


@pytest.fixture
def service(settings: HarnessSettings, crictl: FakeCrictl) -> CrictlRuntimeService:
    return CrictlRuntimeService(settings.model_copy(update={"crictl_binary": str(crictl.path)}))


class TestFixtures:
    def test_sandbox_namespace_randomized(self) -> None:
        first = PodSandboxConfig.build("sandbox", "issue7496")
        second = PodSandboxConfig.build("sandbox", "issue7496")
        assert first.metadata.namespace.startswith("issue7496-")
        assert first.metadata.namespace != second.metadata.namespace
        assert first.metadata.uid != second.metadata.uid

    def test_container_config(self) -> None:
        config = ContainerConfig.build("pausecontainer", "registry.k8s.io/pause:3.9")
        assert config.to_crictl()["image"] == {"image": "registry.k8s.io/pause:3.9"}
        assert config.to_crictl()["metadata"]["name"] == "pausecontainer"


class TestSandboxLifecycle:
    @pytest.mark.asyncio
    async def test_run_pod_sandbox(self, service: CrictlRuntimeService, crictl: FakeCrictl) -> None:
        config = PodSandboxConfig.build("sandbox", "issue7496")
        sandbox_id = await service.run_pod_sandbox(config)

        assert sandbox_id == "sandbox-abc"
        assert crictl.config("pod")["metadata"]["name"] == "sandbox"
        call = crictl.calls[0].split()
        assert call[:2] == ["--runtime-endpoint", "unix:///run/containerd/containerd.sock"]
        assert call[4:6] == ["--timeout", "10s"]
        assert call[6] == "runp"

    @pytest.mark.asyncio
    async def test_runtime_handler(self, service: CrictlRuntimeService, crictl: FakeCrictl) -> None:
        await service.run_pod_sandbox(PodSandboxConfig.build("sandbox", "ns"), "runc-fast")
        assert crictl.calls[0].split()[6:9] == ["runp", "--runtime", "runc-fast"]

    @pytest.mark.asyncio
    async def test_empty_sandbox_id(self, service: CrictlRuntimeService, crictl: FakeCrictl) -> None:
        crictl.set_sandbox_id("")
        with pytest.raises(RuntimeServiceError, match="no sandbox id"):
            await service.run_pod_sandbox(PodSandboxConfig.build("sandbox", "ns"))

    @pytest.mark.asyncio
    async def test_stop_and_remove(self, service: CrictlRuntimeService, crictl: FakeCrictl) -> None:
        await service.stop_pod_sandbox("sandbox-abc")
        await service.remove_pod_sandbox("sandbox-abc")
        assert [c.split()[6:] for c in crictl.calls] == [
            ["stopp", "sandbox-abc"],
            ["rmp", "sandbox-abc"],
        ]

    @pytest.mark.asyncio
    async def test_stop_failure(self, service: CrictlRuntimeService, crictl: FakeCrictl) -> None:
        crictl.fail("stopp", "rpc error: code = DeadlineExceeded")
        with pytest.raises(RuntimeServiceError) as exc_info:
            await service.stop_pod_sandbox("sandbox-abc")
        assert exc_info.value.returncode == 1
        assert "DeadlineExceeded" in exc_info.value.stderr
        assert "DeadlineExceeded" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_missing_binary(self, settings: HarnessSettings, tmp_path: Path) -> None:
        service = CrictlRuntimeService(
            settings.model_copy(update={"crictl_binary": str(tmp_path / "nope")})
        )
        with pytest.raises(RuntimeServiceError, match="failed to run crictl"):
            await service.stop_pod_sandbox("sandbox-abc")


class TestContainers:
    @pytest.mark.asyncio
    async def test_create_and_start(self, service: CrictlRuntimeService, crictl: FakeCrictl) -> None:
        sandbox_config = PodSandboxConfig.build("sandbox", "ns")
        container_id = await service.create_container(
            "sandbox-abc",
            ContainerConfig.build("pausecontainer", "registry.k8s.io/pause:3.9"),
            sandbox_config,
        )
        await service.start_container(container_id)

        assert container_id == "container-abc"
        assert crictl.config("container")["metadata"]["name"] == "pausecontainer"
        assert crictl.calls[-1].split()[6:] == ["start", "container-abc"]


class TestImages:
    @pytest.mark.asyncio
    async def test_pulls_missing_image(self, service: CrictlRuntimeService, crictl: FakeCrictl) -> None:
        await service.ensure_image_exists("registry.k8s.io/pause:3.9")
        commands = [c.split()[6] for c in crictl.calls]
        assert commands == ["inspecti", "pull"]

    @pytest.mark.asyncio
    async def test_skips_present_image(self, service: CrictlRuntimeService, crictl: FakeCrictl) -> None:
        crictl.set_image_present()
        await service.ensure_image_exists("registry.k8s.io/pause:3.9")
        assert [c.split()[6] for c in crictl.calls] == ["inspecti"]


class TestRuntimeInfo:
    @pytest.mark.asyncio
    async def test_default_runtime_type(self, service: CrictlRuntimeService, crictl: FakeCrictl) -> None:
        assert await service.default_runtime_type() == "io.containerd.runc.v2"

    @pytest.mark.asyncio
    async def test_other_runtime(self, service: CrictlRuntimeService, crictl: FakeCrictl) -> None:
        crictl.set_info(default_runtime="kata", runtime_type="io.containerd.kata.v2")
        assert await service.default_runtime_type() == "io.containerd.kata.v2"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["not json", "{}", '{"config": {"containerd": {}}}'])
    async def test_unparseable_info(
        self, service: CrictlRuntimeService, crictl: FakeCrictl, raw: str
    ) -> None:
        crictl.set_raw_info(raw)
        with pytest.raises(RuntimeServiceError, match="default runtime"):
            await service.default_runtime_type()
