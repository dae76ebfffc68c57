from camera.events import CameraEvent, ErrorEvent, EventSink, PhotoEvent, StatusEvent


class RecordingSink(EventSink):
    def __init__(self):
        self.events = []

    def publish(self, event: CameraEvent) -> None:
        self.events.append(event)

    @property
    def statuses(self):
        return [e.state for e in self.events if isinstance(e, StatusEvent)]

    @property
    def photos(self):
        return [e for e in self.events if isinstance(e, PhotoEvent)]

    @property
    def errors(self):
        return [e for e in self.events if isinstance(e, ErrorEvent)]
