from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class ConnectionState(Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    ERROR = "ERROR"


class AcquisitionMode(Enum):
    TETHERED = "tethered"
    POLL = "poll"


@dataclass(frozen=True)
class DeviceFile:
    """A file as listed by the camera, addressed by folder + per-folder index."""

    folder: str
    index: int
    name: str

    @property
    def identifier(self) -> str:
        return f"{self.folder.rstrip('/')}/{self.name}"


@dataclass(frozen=True)
class CapturedPhoto:
    device_filename: str
    local_filename: str
    local_path: Path


@dataclass(frozen=True)
class DownloadFailure:
    identifier: str
    reason: str
    no_space: bool = False
