"""Container runtime abstraction: Protocol + Docker and Apple Container implementations."""

from __future__ import annotations

import shutil
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from cronbox.infrastructure.config import ASSISTANT_NAME, CONTAINER_IMAGE


@dataclass
class LaunchSpec:
    """Everything a runtime needs to build the command for one run."""

    name: str
    group_dir: Path
    ipc_dir: Path
    input_file: Path
    env: dict[str, str] = field(default_factory=dict)


class ContainerRuntime(Protocol):
    """Interface for container runtimes (Docker, Apple Container, etc.)."""

    @property
    def bin(self) -> str:
        """Path to the runtime binary (e.g. 'docker')."""
        ...

    def command(self, spec: LaunchSpec) -> list[str]:
        """Full argv for launching one isolated run."""
        ...


class DockerRuntime:
    """Docker container runtime (Linux)."""

    def __init__(self, image: str = CONTAINER_IMAGE) -> None:
        self._bin = shutil.which("docker") or "docker"
        self._image = image

    @property
    def bin(self) -> str:
        return self._bin

    def command(self, spec: LaunchSpec) -> list[str]:
        env_args: list[str] = []
        for key, value in spec.env.items():
            env_args.extend(["-e", f"{key}={value}"])
        return [
            self._bin, "run", "-i", "--rm",
            "--name", spec.name,
            "-v", f"{spec.group_dir}:/workspace/group",
            "-v", f"{spec.ipc_dir}:/workspace/ipc:ro",
            "-v", f"{spec.input_file}:/workspace/input.json:ro",
            *env_args,
            self._image,
        ]


class AppleContainerRuntime:
    """Apple Container runtime (macOS `container` CLI)."""

    def __init__(self) -> None:
        self._bin = shutil.which("container") or "container"

    @property
    def bin(self) -> str:
        return self._bin

    def command(self, spec: LaunchSpec) -> list[str]:
        return [
            self._bin, "exec",
            "--workspace", str(spec.group_dir),
            "--input", str(spec.input_file),
            "--name", ASSISTANT_NAME,
        ]


def default_runtime() -> ContainerRuntime:
    if sys.platform == "darwin":
        return AppleContainerRuntime()
    return DockerRuntime()
