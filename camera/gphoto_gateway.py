import asyncio
import logging
from pathlib import Path
from typing import Optional

from camera.gateway_base import CommandResult, DeviceGateway, GatewayError
from camera.models import DeviceFile
from camera.parsers import parse_auto_detect, parse_file_list, parse_folder_list

logger = logging.getLogger(__name__)


class GPhotoGateway(DeviceGateway):
    """
    Runs the gphoto2 command line tool, one invocation per operation.

    Output is collected as a single stream (stderr folded into stdout).
    """

    def __init__(
            self,
            gphoto2_path: str = "gphoto2",
            presence_timeout: float = 5.0,
            command_timeout: Optional[float] = 60.0,
    ):
        self.gphoto2_path = gphoto2_path
        self.presence_timeout = presence_timeout
        self.command_timeout = command_timeout
        self._presence_busy = False

    # ---------- Operations ----------

    async def is_present(self) -> bool:
        # The camera accepts a single USB session; never overlap checks.
        if self._presence_busy:
            logger.debug("Presence check already in flight; reporting not present")
            return False

        self._presence_busy = True
        try:
            result = await self._run(["--auto-detect"], timeout=self.presence_timeout)
        except GatewayError as e:
            logger.debug("Presence check failed: %s", e)
            return False
        finally:
            self._presence_busy = False

        return result.ok and parse_auto_detect(result.output)

    async def list_folders(self, path: str) -> list[str]:
        result = await self._run(["--folder", path, "--list-folders"])
        if not result.ok:
            raise GatewayError(
                f"Listing folders of {path} failed (rc={result.exit_code}): {result.output.strip()}"
            )
        return parse_folder_list(result.output)

    async def list_files(self, folder: str) -> list[DeviceFile]:
        result = await self._run(["--folder", folder, "--no-recurse", "--list-files"])
        if not result.ok:
            raise GatewayError(
                f"Listing files of {folder} failed (rc={result.exit_code}): {result.output.strip()}"
            )
        return parse_file_list(result.output, folder=folder)

    async def get_file(self, file: DeviceFile, destination: Path) -> CommandResult:
        return await self._run(
            [
                "--folder", file.folder,
                "--no-recurse",
                "--get-file", str(file.index),
                "--filename", str(destination),
                "--force-overwrite",
            ]
        )

    async def set_config(self, name: str, value: str) -> CommandResult:
        return await self._run(["--set-config", f"{name}={value}"])

    async def start_tethered(self, filename_pattern: str) -> asyncio.subprocess.Process:
        cmd = [
            self.gphoto2_path,
            "--capture-tethered",
            "--keep",
            "--force-overwrite",
            "--filename", filename_pattern,
        ]
        logger.debug("Starting listener: %s", " ".join(cmd))
        return await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )

    # ---------- Internal ----------

    async def _run(self, args: list[str], timeout: Optional[float] = None) -> CommandResult:
        cmd = [self.gphoto2_path, *args]
        timeout = self.command_timeout if timeout is None else timeout

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise GatewayError(f"Could not run {self.gphoto2_path}: {e}") from e

        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError as e:
            await _reap(proc)
            raise GatewayError(f"{' '.join(args)} timed out after {timeout}s") from e
        except asyncio.CancelledError:
            # Shutdown: the child must not outlive us holding the USB session
            await _reap(proc)
            raise

        output = (stdout or b"").decode(errors="replace")
        return CommandResult(exit_code=proc.returncode, output=output)


async def _reap(proc) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
    await proc.wait()
