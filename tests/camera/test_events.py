from camera.events import ErrorCode, ErrorEvent, NullSink, PhotoEvent, StatusEvent
from camera.models import ConnectionState


def test_status_event_payload():
    event = StatusEvent.for_state(ConnectionState.CONNECTING)
    assert event.kind == "status"
    assert event.to_dict() == {"connected": False, "state": "CONNECTING"}


def test_error_event_defaults_to_camera_error():
    assert ErrorEvent("boom").to_dict() == {"message": "boom", "code": "CAMERA_ERROR"}
    assert ErrorEvent("full", ErrorCode.NO_SPACE).to_dict()["code"] == "NO_SPACE"


def test_null_sink_accepts_every_event():
    sink = NullSink()

    assert sink.publish(PhotoEvent(filename="a.jpg", path="/photos/a.jpg")) is None
    assert sink.publish(StatusEvent.for_state(ConnectionState.ERROR)) is None
