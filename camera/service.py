"""
Camera service

Single owner of the camera connection and of everything downloaded from it.

Goals:
- Camera unplugged, off, or busy at any point -> recover without operator help
- Each device file is fetched and announced at most once per session
- One gphoto2 operation against the device at a time
- Nothing here blocks the event loop; every wait is a timer, a process or a sleep
"""
import asyncio
import logging
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import Coroutine, Deque, Optional, Set

from camera.discovery import FolderDiscovery
from camera.events import (
    ErrorCode,
    ErrorEvent,
    EventSink,
    NullSink,
    PhotoEvent,
    StatusEvent,
    CameraEvent,
)
from camera.gateway_base import DeviceGateway, GatewayError, ListenerProcess
from camera.models import (
    AcquisitionMode,
    CapturedPhoto,
    ConnectionState,
    DeviceFile,
    DownloadFailure,
)
from camera.parsers import filename_of, is_jpeg, parse_saved_file, reports_no_space
from camera.pipeline import DownloadPipeline, DownloadResult

logger = logging.getLogger(__name__)


class CameraService:
    # Fixed delay between reconnection attempts
    RECONNECT_DELAY = 3.0  # seconds

    # Poll mode listing interval
    POLL_INTERVAL = 2.0  # seconds

    # How long the listener gets to exit on SIGTERM before it is killed
    STOP_GRACE = 5.0  # seconds

    # gphoto2 --filename format: camera name + capture time + camera extension
    LISTENER_FILENAME = "%f_%Y%m%d_%H%M%S.%C"

    def __init__(
            self,
            gateway: DeviceGateway,
            photos_dir: Path,
            sink: Optional[EventSink] = None,
            *,
            mode: AcquisitionMode = AcquisitionMode.TETHERED,
            reconnect_delay: float = RECONNECT_DELAY,
            poll_interval: float = POLL_INTERVAL,
            stop_grace: float = STOP_GRACE,
            public_prefix: str = "/photos",
            capture_target: Optional[str] = "1",
            discovery: Optional[FolderDiscovery] = None,
            pipeline: Optional[DownloadPipeline] = None,
    ):
        self._gateway = gateway
        self.photos_dir = photos_dir
        self._sink = sink or NullSink()
        self.mode = mode
        self.reconnect_delay = reconnect_delay
        self.poll_interval = poll_interval
        self.stop_grace = stop_grace
        self.public_prefix = public_prefix.rstrip("/")
        self.capture_target = capture_target

        self._discovery = discovery or FolderDiscovery(gateway)
        self._pipeline = pipeline or DownloadPipeline(gateway, photos_dir)

        # Connection
        self._state = ConnectionState.DISCONNECTED
        self._shutting_down = False
        self._connecting = False
        self._reconnect_attempts = 0
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None
        self._absence_reported = False

        # Acquisition
        self._paused = False
        self._polling = False
        self._draining = False
        self._poll_handle: Optional[asyncio.TimerHandle] = None
        self._listener: Optional[ListenerProcess] = None

        # Session bookkeeping
        self._downloaded: Set[str] = set()
        self._queue: Deque[DeviceFile] = deque()
        self._queued: Set[str] = set()
        self._generation = 0
        # Poll mode: photos already on the card when the service started
        self._preexisting: Optional[Set[str]] = None

        self._tasks: Set[asyncio.Task] = set()

    # ---------- Lifecycle ----------

    async def start(self) -> None:
        self._shutting_down = False
        self._preexisting = None
        self.photos_dir.mkdir(parents=True, exist_ok=True)
        logger.info(
            "Camera service started (%s mode). Waiting for camera... (session start: %s)",
            self.mode.value,
            datetime.now().strftime("%H:%M:%S"),
        )
        self._spawn(self._connect())

    async def stop(self) -> None:
        self._shutting_down = True
        self._cancel_reconnect()
        self._cancel_poll()

        listener, self._listener = self._listener, None
        if listener is not None:
            await self._terminate(listener)

        current = asyncio.current_task()
        pending = [task for task in self._tasks if task is not current]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        self._state = ConnectionState.DISCONNECTED
        self._publish(StatusEvent.for_state(ConnectionState.DISCONNECTED))
        logger.info("Camera service stopped")

    def pause(self) -> None:
        """Stop announcing new photos; the connection stays up."""
        self._paused = True
        logger.info("Photo announcements paused")

    def resume(self) -> None:
        self._paused = False
        logger.info("Photo announcements resumed")

    def reset_session(self) -> None:
        """
        Forget what was downloaded so the next capture cycle starts fresh.

        Pending downloads are dropped and a transfer already in flight is
        discarded when it lands; anything still on the device that was taken
        after the service started is detected again.
        """
        self._generation += 1
        self._downloaded.clear()
        self._queue.clear()
        self._queued.clear()
        logger.info("Session reset at %s", datetime.now().strftime("%H:%M:%S"))

    def get_status(self) -> dict:
        return StatusEvent.for_state(self._state).to_dict()

    # ---------- Read-only views ----------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def photo_folder(self) -> Optional[str]:
        return self._discovery.cached_path

    # ---------- Connection ----------

    async def _connect(self) -> None:
        if self._shutting_down or self._connecting:
            return

        self._connecting = True
        try:
            await self._attempt_connection()
        finally:
            self._connecting = False

    async def _attempt_connection(self) -> None:
        if not await self._gateway.is_present():
            if not self._absence_reported:
                logger.info("Camera not detected; retrying every %.1fs", self.reconnect_delay)
                self._absence_reported = True
            self._connection_failed(ConnectionState.DISCONNECTED)
            return
        self._absence_reported = False

        if self._shutting_down:
            return
        self._set_state(ConnectionState.CONNECTING)

        folder = await self._discovery.discover()
        if self._shutting_down:
            return
        if folder is None:
            self._discovery.invalidate()
            self._connection_failed(ConnectionState.DISCONNECTED)
            return

        if self.mode == AcquisitionMode.TETHERED:
            await self._start_listener()
        else:
            self._mark_connected()
            self._schedule_poll(0)

    def _mark_connected(self) -> None:
        self._reconnect_attempts = 0
        self._set_state(ConnectionState.CONNECTED)

    def _connection_failed(self, state: ConnectionState) -> None:
        self._reconnect_attempts += 1
        self._set_state(state)
        self._schedule_reconnect()

    def _handle_disconnect(self) -> None:
        logger.info("Camera disconnected")
        self._discovery.invalidate()
        self._cancel_poll()
        self._connection_failed(ConnectionState.DISCONNECTED)

    def _schedule_reconnect(self) -> None:
        self._cancel_reconnect()
        if self._shutting_down:
            return

        logger.debug(
            "Reconnect in %.1fs (failed attempts: %d)",
            self.reconnect_delay,
            self._reconnect_attempts,
        )
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(self.reconnect_delay, self._on_reconnect_timer)

    def _on_reconnect_timer(self) -> None:
        self._reconnect_handle = None
        if self._shutting_down:
            return
        self._spawn(self._connect())

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        logger.info("Camera %s -> %s", self._state.value, state.value)
        self._state = state
        self._publish(StatusEvent.for_state(state))

    # ---------- Tethered listener ----------

    async def _start_listener(self) -> None:
        if self.capture_target is not None:
            await self._set_capture_target()

        pattern = str(self.photos_dir / self.LISTENER_FILENAME)
        try:
            proc = await self._gateway.start_tethered(pattern)
        except OSError as e:
            logger.error("Could not start capture listener: %s", e)
            self._publish(
                ErrorEvent(f"Could not start capture listener: {e}", ErrorCode.LISTENER_FAILED)
            )
            self._connection_failed(ConnectionState.ERROR)
            return

        if self._shutting_down:
            await self._terminate(proc)
            return

        self._listener = proc
        self._mark_connected()
        self._spawn(self._watch_listener(proc))

    async def _set_capture_target(self) -> None:
        try:
            result = await self._gateway.set_config("capturetarget", self.capture_target)
        except GatewayError as e:
            logger.info("Could not set capture target: %s", e)
            return
        if not result.ok:
            logger.info("Could not set capture target: %s", result.output.strip())

    async def _watch_listener(self, proc: ListenerProcess) -> None:
        try:
            while True:
                raw = await proc.stdout.readline()
                if not raw:
                    break
                line = raw.decode(errors="replace").strip()
                if not line:
                    continue
                try:
                    await self._handle_listener_line(line)
                except Exception:
                    # One bad line must not take the listener down with it
                    logger.exception("Failed to handle listener line %r", line)
        except Exception as e:
            # Nobody would drain its pipe any more; end it and reconnect
            logger.exception("Lost capture listener output")
            self._publish(
                ErrorEvent(f"Lost capture listener output: {e}", ErrorCode.LISTENER_FAILED)
            )
            await self._terminate(proc)

        code = await proc.wait()
        self._on_listener_exit(proc, code)

    async def _handle_listener_line(self, line: str) -> None:
        logger.debug("gphoto2: %s", line)

        if reports_no_space(line):
            logger.error("Camera reports storage full: %s", line)
            self._publish(ErrorEvent(f"Camera storage is full: {line}", ErrorCode.NO_SPACE))
            return

        saved = parse_saved_file(line)
        if saved is None:
            return

        filename = filename_of(saved)
        if not is_jpeg(filename):
            logger.debug("Ignoring non-JPEG capture %s", filename)
            return
        if filename in self._downloaded:
            return
        self._downloaded.add(filename)

        if self._paused:
            logger.info("Paused; discarding %s", filename)
            return

        result = await self._pipeline.collect(saved)
        if isinstance(result, DownloadFailure):
            logger.error("Captured file never became readable: %s", filename)
            self._publish(
                ErrorEvent(f"Timed out waiting for {filename}", ErrorCode.FILE_TIMEOUT)
            )
            return
        self._announce(result)

    def _on_listener_exit(self, proc: ListenerProcess, code: Optional[int]) -> None:
        if self._listener is not proc:
            return
        self._listener = None

        if self._shutting_down:
            logger.debug("Capture listener exited during shutdown (code %s)", code)
            return

        logger.warning("Capture listener exited with code %s", code)
        self._handle_disconnect()

    async def _terminate(self, proc: ListenerProcess) -> None:
        if proc.returncode is not None:
            return
        try:
            proc.terminate()
        except ProcessLookupError:
            return

        try:
            await asyncio.wait_for(proc.wait(), timeout=self.stop_grace)
        except asyncio.TimeoutError:
            logger.warning("Capture listener ignored SIGTERM; killing it")
            try:
                proc.kill()
            except ProcessLookupError:
                return
            await proc.wait()

    # ---------- Polling ----------

    def _schedule_poll(self, delay: Optional[float] = None) -> None:
        self._cancel_poll()
        if self._shutting_down:
            return
        delay = self.poll_interval if delay is None else delay
        self._poll_handle = asyncio.get_running_loop().call_later(delay, self._on_poll_timer)

    def _on_poll_timer(self) -> None:
        self._poll_handle = None
        if self._polling or self._shutting_down:
            return
        self._spawn(self._poll_once())

    def _cancel_poll(self) -> None:
        if self._poll_handle is not None:
            self._poll_handle.cancel()
            self._poll_handle = None

    async def _poll_once(self) -> None:
        if self._polling:
            return

        self._polling = True
        try:
            await self._poll_device()
        finally:
            self._polling = False
            if self._state == ConnectionState.CONNECTED and not self._shutting_down:
                self._schedule_poll()

    async def _poll_device(self) -> None:
        if self._state != ConnectionState.CONNECTED:
            return

        folder = await self._discovery.discover()
        if folder is None:
            self._handle_disconnect()
            return

        try:
            files = await self._gateway.list_files(folder)
        except GatewayError as e:
            logger.info("Listing %s failed: %s", folder, e)
            self._discovery.invalidate()
            if not await self._gateway.is_present():
                self._handle_disconnect()
            return

        jpegs = [file for file in files if is_jpeg(file.name)]
        if self._preexisting is None:
            self._preexisting = {file.identifier for file in jpegs}
            logger.info("Ignoring %d photos already on the camera", len(self._preexisting))
            return

        for file in jpegs:
            if file.identifier not in self._preexisting:
                self._enqueue(file)

        await self._drain_queue()

    def _enqueue(self, file: DeviceFile) -> bool:
        identifier = file.identifier
        if identifier in self._downloaded or identifier in self._queued:
            return False
        self._queue.append(file)
        self._queued.add(identifier)
        return True

    async def _drain_queue(self) -> None:
        if self._draining:
            return

        self._draining = True
        try:
            while self._queue and not self._shutting_down:
                file = self._queue.popleft()
                self._queued.discard(file.identifier)

                if self._paused:
                    self._downloaded.add(file.identifier)
                    logger.info("Paused; discarding %s", file.identifier)
                    continue

                generation = self._generation
                try:
                    result = await self._pipeline.download(file)
                finally:
                    if generation == self._generation:
                        self._downloaded.add(file.identifier)

                if generation != self._generation:
                    self._discard_stale(result)
                    continue
                self._handle_download(result)
        finally:
            self._draining = False

    def _discard_stale(self, result: DownloadResult) -> None:
        if isinstance(result, CapturedPhoto):
            logger.info("Session reset during transfer; discarding %s", result.local_filename)
            result.local_path.unlink(missing_ok=True)
        else:
            logger.info("Session reset during transfer of %s", result.identifier)

    def _handle_download(self, result: DownloadResult) -> None:
        if isinstance(result, CapturedPhoto):
            self._announce(result)
            return

        logger.error("Download of %s failed: %s", result.identifier, result.reason)
        if result.no_space:
            self._publish(
                ErrorEvent(f"No space left while saving {result.identifier}", ErrorCode.NO_SPACE)
            )
        else:
            self._publish(
                ErrorEvent(f"Failed to download {result.identifier}", ErrorCode.DOWNLOAD_FAILED)
            )

    # ---------- Publishing ----------

    def _announce(self, photo: CapturedPhoto) -> None:
        if self._paused:
            logger.info("Paused; discarding %s", photo.local_filename)
            return
        logger.info("New photo: %s", photo.local_filename)
        self._publish(
            PhotoEvent(
                filename=photo.local_filename,
                path=f"{self.public_prefix}/{photo.local_filename}",
            )
        )

    def _publish(self, event: CameraEvent) -> None:
        try:
            self._sink.publish(event)
        except Exception:
            logger.exception("Event sink rejected %s event", event.kind)

    # ---------- Tasks ----------

    def _spawn(self, coro: Coroutine) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return

        exc = task.exception()
        if exc is None:
            return

        logger.error("Camera task failed", exc_info=exc)
        self._publish(ErrorEvent(f"Camera error: {exc}"))
        if (
                not self._shutting_down
                and self._state != ConnectionState.CONNECTED
                and self._reconnect_handle is None
        ):
            self._connection_failed(ConnectionState.ERROR)
