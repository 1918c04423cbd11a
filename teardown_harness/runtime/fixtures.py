"""
Pod sandbox and container config builders.

Thin value objects serialized to the JSON crictl expects.
"""

from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field


class PodSandboxMetadata(BaseModel):
    name: str
    uid: str
    namespace: str
    attempt: int = 1


class PodSandboxConfig(BaseModel):
    """CRI PodSandboxConfig subset."""

    metadata: PodSandboxMetadata
    hostname: str = ""
    log_directory: str = ""
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    linux: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def build(cls, name: str, namespace: str) -> "PodSandboxConfig":
        """
        Build a sandbox config with a fresh uid and a randomized namespace,
        so repeated runs never collide with leftovers.
        """
        return cls(
            metadata=PodSandboxMetadata(
                name=name,
                uid=uuid4().hex,
                namespace=f"{namespace}-{uuid4().hex[:8]}",
            ),
        )

    def to_crictl(self) -> dict[str, Any]:
        return self.model_dump()


class ContainerMetadata(BaseModel):
    name: str
    attempt: int = 0


class ImageSpec(BaseModel):
    image: str


class ContainerConfig(BaseModel):
    """CRI ContainerConfig subset."""

    metadata: ContainerMetadata
    image: ImageSpec
    command: list[str] = Field(default_factory=list)
    args: list[str] = Field(default_factory=list)
    log_path: str = ""
    linux: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def build(cls, name: str, image: str) -> "ContainerConfig":
        return cls(metadata=ContainerMetadata(name=name), image=ImageSpec(image=image))

    def to_crictl(self) -> dict[str, Any]:
        return self.model_dump()
