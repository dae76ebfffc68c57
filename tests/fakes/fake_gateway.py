# tests/fakes/fake_gateway.py

import asyncio
from collections import deque
from pathlib import Path

from camera.gateway_base import CommandResult, DeviceGateway, GatewayError
from camera.models import DeviceFile

PHOTO_FOLDER = "/store_00010001/DCIM/103CANON"
JPEG_BYTES = b"\xff\xd8\xff" + b"fake image data"


class FakeListener:
    """Stands in for a running `gphoto2 --capture-tethered` process."""

    def __init__(self):
        self.stdout = asyncio.StreamReader()
        self.returncode = None
        self.terminated = False
        self.killed = False
        self.ignore_terminate = False
        self._exited = asyncio.Event()

    def emit(self, line: str) -> None:
        self.stdout.feed_data((line + "\n").encode())

    def exit(self, code: int) -> None:
        if self.returncode is not None:
            return
        self.returncode = code
        self.stdout.feed_eof()
        self._exited.set()

    async def wait(self) -> int:
        await self._exited.wait()
        return self.returncode

    def terminate(self) -> None:
        self.terminated = True
        if not self.ignore_terminate:
            self.exit(-15)

    def kill(self) -> None:
        self.killed = True
        self.exit(-9)


class FakeGateway(DeviceGateway):
    def __init__(self, present: bool = True):
        self.present = present
        self.presence_script = deque()
        self.presence_calls = 0

        self.folders = {
            "/": ["store_00010001"],
            "/store_00010001": ["DCIM", "MISC"],
            "/store_00010001/DCIM": ["100CANON", "103CANON", "87CANON"],
        }
        self.folder_calls = []

        self.files = {}
        self.list_error = False
        self.list_calls = 0

        self.failing = {}
        self.get_file_calls = []
        self.transfer_gate = None

        self.config_calls = []
        self.spawn_error = None
        self.patterns = []
        self.listeners = []

    @property
    def listener(self) -> FakeListener:
        return self.listeners[-1]

    def add_file(self, name: str, folder: str = PHOTO_FOLDER) -> DeviceFile:
        existing = self.files.setdefault(folder, [])
        file = DeviceFile(folder=folder, index=len(existing) + 1, name=name)
        existing.append(file)
        return file

    async def is_present(self) -> bool:
        self.presence_calls += 1
        if self.presence_script:
            return self.presence_script.popleft()
        return self.present

    async def list_folders(self, path: str) -> list[str]:
        self.folder_calls.append(path)
        if path not in self.folders:
            raise GatewayError(f"Folder {path} not found")
        return list(self.folders[path])

    async def list_files(self, folder: str) -> list[DeviceFile]:
        self.list_calls += 1
        if self.list_error:
            raise GatewayError("Could not list files")
        return list(self.files.get(folder, []))

    async def get_file(self, file: DeviceFile, destination: Path) -> CommandResult:
        self.get_file_calls.append(file.identifier)
        if self.transfer_gate is not None:
            await self.transfer_gate.wait()
        if file.name in self.failing:
            return CommandResult(exit_code=1, output=self.failing[file.name])
        destination.write_bytes(JPEG_BYTES)
        return CommandResult(exit_code=0, output=f"Saving file as {destination}\n")

    async def set_config(self, name: str, value: str) -> CommandResult:
        self.config_calls.append((name, value))
        return CommandResult(exit_code=0, output="")

    async def start_tethered(self, filename_pattern: str) -> FakeListener:
        self.patterns.append(filename_pattern)
        if self.spawn_error is not None:
            raise self.spawn_error
        listener = FakeListener()
        self.listeners.append(listener)
        return listener
