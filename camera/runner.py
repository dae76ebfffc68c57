import asyncio
import inspect
import logging
import threading
from typing import Any, Callable, Optional

from camera.service import CameraService

logger = logging.getLogger(__name__)


class ServiceRunner:
    """
    Hosts the camera service's event loop on a daemon thread.

    IMPORTANT:
    - The service is only ever touched from its own loop.
    - Other threads (Flask handlers, signal handlers) go through ``call``.
    """

    CALL_TIMEOUT = 10.0  # seconds

    def __init__(self, service: CameraService):
        self.service = service
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return

        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run, name="camera-loop", daemon=True)
        self._thread.start()
        self._running = True
        self.call(self.service.start)

    def stop(self, timeout: float = CALL_TIMEOUT) -> None:
        if not self._running:
            return
        self._running = False

        try:
            self.call(self.service.stop, timeout=timeout)
        except Exception:
            logger.exception("Camera service did not stop cleanly")
        finally:
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join(timeout=timeout)

    def call(self, func: Callable[..., Any], *args: Any, timeout: float = CALL_TIMEOUT) -> Any:
        """Run ``func`` on the service loop and return its result (awaiting it if needed)."""
        if self._loop is None:
            raise RuntimeError("Camera loop is not running")

        async def invoke():
            result = func(*args)
            if inspect.isawaitable(result):
                result = await result
            return result

        future = asyncio.run_coroutine_threadsafe(invoke(), self._loop)
        return future.result(timeout=timeout)

    def status(self) -> dict:
        # Read-only snapshot; safe to take from any thread.
        return self.service.get_status()

    def _run(self) -> None:
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_forever()
        finally:
            pending = asyncio.all_tasks(self._loop)
            for task in pending:
                task.cancel()
            if pending:
                self._loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            self._loop.run_until_complete(self._loop.shutdown_asyncgens())
            self._loop.close()
