"""
RuntimeService interface.

Defines the contract for the container orchestration service (CRI) the
scenario drives. All calls raise RuntimeServiceError on failure; callers
decide whether to retry.
"""

from abc import ABC, abstractmethod

from teardown_harness.runtime.fixtures import ContainerConfig, PodSandboxConfig


class RuntimeService(ABC):
    """Abstract base class for CRI access."""

    # =========================================================================
    # Pod sandbox lifecycle
    # =========================================================================

    @abstractmethod
    async def run_pod_sandbox(self, config: PodSandboxConfig, runtime_handler: str = "") -> str:
        """
        Create and start a pod sandbox.

        Returns:
            Sandbox id
        """
        pass

    @abstractmethod
    async def stop_pod_sandbox(self, sandbox_id: str) -> None:
        """Stop a pod sandbox and every container in it."""
        pass

    @abstractmethod
    async def remove_pod_sandbox(self, sandbox_id: str) -> None:
        """Remove a stopped pod sandbox."""
        pass

    # =========================================================================
    # Containers
    # =========================================================================

    @abstractmethod
    async def create_container(
        self,
        sandbox_id: str,
        config: ContainerConfig,
        sandbox_config: PodSandboxConfig,
    ) -> str:
        """
        Create a container inside a sandbox.

        Returns:
            Container id
        """
        pass

    @abstractmethod
    async def start_container(self, container_id: str) -> None:
        """Start a created container."""
        pass

    # =========================================================================
    # Images / runtime info
    # =========================================================================

    @abstractmethod
    async def image_exists(self, image: str) -> bool:
        """Check whether an image is present locally."""
        pass

    @abstractmethod
    async def pull_image(self, image: str) -> None:
        """Pull an image."""
        pass

    @abstractmethod
    async def default_runtime_type(self) -> str:
        """Runtime type of the CRI plugin's default runtime (e.g. io.containerd.runc.v2)."""
        pass

    async def ensure_image_exists(self, image: str) -> None:
        """Pull image unless it is already present."""
        if not await self.image_exists(image):
            await self.pull_image(image)
