import logging
from queue import SimpleQueue

from flask_socketio import SocketIO

from camera.events import CameraEvent, EventSink

logger = logging.getLogger(__name__)

SOCKET_EVENT_NAMES = {
    "status": "camera-status",
    "photo": "photo-captured",
    "error": "camera-error",
}


class SocketIOSink(EventSink):
    """
    Forwards camera events to every connected browser.

    ``publish`` only enqueues; a Socket.IO background task does the emitting,
    so the camera loop never waits on a slow client.
    """

    def __init__(self, socketio: SocketIO):
        self._socketio = socketio
        self._queue: SimpleQueue = SimpleQueue()
        self._started = False

    def publish(self, event: CameraEvent) -> None:
        self._queue.put(event)

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        self._socketio.start_background_task(self._run)

    def stop(self) -> None:
        if self._started:
            self._queue.put(None)
            self._started = False

    def _run(self) -> None:
        while True:
            event = self._queue.get()
            if event is None:
                return
            try:
                self._socketio.emit(SOCKET_EVENT_NAMES[event.kind], event.to_dict())
            except Exception:
                logger.exception("Could not broadcast %s event", event.kind)
