"""
Outbound events published by the camera service.

There are exactly three shapes: status, photo and error. Sinks receive them
through ``EventSink.publish`` and must return immediately.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum, auto
from typing import Union

from camera.models import ConnectionState


class ErrorCode(Enum):
    CAMERA_ERROR = auto()
    NO_SPACE = auto()
    FILE_TIMEOUT = auto()
    DOWNLOAD_FAILED = auto()
    LISTENER_FAILED = auto()


@dataclass(frozen=True)
class StatusEvent:
    connected: bool
    state: ConnectionState

    kind = "status"

    @staticmethod
    def for_state(state: ConnectionState) -> "StatusEvent":
        return StatusEvent(connected=state == ConnectionState.CONNECTED, state=state)

    def to_dict(self) -> dict:
        return {"connected": self.connected, "state": self.state.value}


@dataclass(frozen=True)
class PhotoEvent:
    filename: str
    path: str

    kind = "photo"

    def to_dict(self) -> dict:
        return {"filename": self.filename, "path": self.path}


@dataclass(frozen=True)
class ErrorEvent:
    message: str
    code: ErrorCode = ErrorCode.CAMERA_ERROR

    kind = "error"

    def to_dict(self) -> dict:
        return {"message": self.message, "code": self.code.name}


CameraEvent = Union[StatusEvent, PhotoEvent, ErrorEvent]


class EventSink(ABC):
    """Receiver of camera events. Implementations must never block."""

    @abstractmethod
    def publish(self, event: CameraEvent) -> None:
        pass


class NullSink(EventSink):
    def publish(self, event: CameraEvent) -> None:
        pass
