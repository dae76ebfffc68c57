# delivery/sender_base.py

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Optional, Sequence

ProgressCallback = Callable[[int, int], None]


class SendError(RuntimeError):
    """Raised when photos cannot be delivered to the recipient."""


class PhotoSender(ABC):
    """
    Abstract messaging channel that delivers photos to a chat address.

    The web layer owns validation and progress reporting. Concrete
    implementations talk to the actual messaging service.
    """

    @abstractmethod
    def is_connected(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    def send_photos(
            self,
            recipient: str,
            photo_paths: Sequence[Path],
            *,
            on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        """
        Send every photo in order to ``recipient``.

        - ``on_progress(sent, total)`` is called after each photo.
        - Implementations should raise SendError on failure.
        """
        raise NotImplementedError
