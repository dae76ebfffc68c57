from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from camera.models import DeviceFile


class GatewayError(Exception):
    """Raised when a device command cannot be run or reports failure."""


@dataclass(frozen=True)
class CommandResult:
    exit_code: int
    output: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class ListenerProcess(Protocol):
    """The subset of ``asyncio.subprocess.Process`` the service relies on."""

    stdout: object
    returncode: int | None

    async def wait(self) -> int: ...

    def terminate(self) -> None: ...

    def kill(self) -> None: ...


class DeviceGateway(ABC):
    """
    Abstract device command interface.

    Implementations never retry; retry and backoff belong to the caller.
    """

    @abstractmethod
    async def is_present(self) -> bool:
        """Return True if a camera answers. Never raises."""
        pass

    @abstractmethod
    async def list_folders(self, path: str) -> list[str]:
        pass

    @abstractmethod
    async def list_files(self, folder: str) -> list[DeviceFile]:
        pass

    @abstractmethod
    async def get_file(self, file: DeviceFile, destination: Path) -> CommandResult:
        pass

    @abstractmethod
    async def set_config(self, name: str, value: str) -> CommandResult:
        pass

    @abstractmethod
    async def start_tethered(self, filename_pattern: str) -> ListenerProcess:
        """Spawn the long-lived capture listener. Raises OSError if it cannot start."""
        pass
