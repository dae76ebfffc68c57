import asyncio
import logging
import os
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Callable, Union

from camera.gateway_base import DeviceGateway, GatewayError
from camera.models import CapturedPhoto, DeviceFile, DownloadFailure
from camera.parsers import filename_of, reports_no_space

logger = logging.getLogger(__name__)

DownloadResult = Union[CapturedPhoto, DownloadFailure]


class DownloadPipeline:
    """
    Moves one device file into the photos directory.

    Never raises for device or filesystem trouble; failures come back as
    ``DownloadFailure`` so the caller can mark the identifier handled.
    """

    READY_ATTEMPTS = 10
    READY_INTERVAL = 0.1  # seconds

    def __init__(
            self,
            gateway: DeviceGateway,
            destination: Path,
            *,
            ready_attempts: int = READY_ATTEMPTS,
            ready_interval: float = READY_INTERVAL,
            clock: Callable[[], datetime] = datetime.now,
    ):
        self._gateway = gateway
        self.destination = destination
        self.ready_attempts = ready_attempts
        self.ready_interval = ready_interval
        self._clock = clock

    def local_filename(self, device_name: str) -> str:
        name = PurePosixPath(device_name)
        stamp = self._clock().strftime("%Y%m%d_%H%M%S_%f")
        return f"{name.stem}_{stamp}{name.suffix.lower()}"

    async def download(self, file: DeviceFile) -> DownloadResult:
        local_name = self.local_filename(file.name)
        local_path = self.destination / local_name

        try:
            result = await self._gateway.get_file(file, local_path)
        except GatewayError as e:
            return DownloadFailure(file.identifier, str(e))

        if not result.ok:
            return DownloadFailure(
                file.identifier,
                f"get-file exited with code {result.exit_code}: {result.output.strip()}",
                no_space=reports_no_space(result.output),
            )

        if not await self.wait_until_ready(local_path):
            return DownloadFailure(
                file.identifier, f"{local_name} was not written after transfer"
            )

        logger.info("Downloaded %s -> %s", file.identifier, local_name)
        return CapturedPhoto(
            device_filename=file.name,
            local_filename=local_name,
            local_path=local_path,
        )

    async def collect(self, saved_path: str) -> DownloadResult:
        """Confirm a file the tethered listener reported as saved."""
        local_name = filename_of(saved_path)
        local_path = self.destination / local_name

        if not await self.wait_until_ready(local_path):
            return DownloadFailure(local_name, f"Timed out waiting for {local_name}")

        return CapturedPhoto(
            device_filename=local_name,
            local_filename=local_name,
            local_path=local_path,
        )

    async def wait_until_ready(self, path: Path) -> bool:
        for attempt in range(self.ready_attempts):
            if _is_readable(path):
                return True
            if attempt < self.ready_attempts - 1:
                await asyncio.sleep(self.ready_interval)
        return False


def _is_readable(path: Path) -> bool:
    try:
        return path.is_file() and os.access(path, os.R_OK)
    except OSError:
        return False
