"""
Flask application: photo files, camera status, and the Socket.IO channel
the browser client lives on.
"""
import logging
from pathlib import Path
from typing import List, Optional

from flask import Flask, jsonify, render_template, send_from_directory
from flask_socketio import SocketIO, emit

from camera.gateway_base import DeviceGateway
from camera.gphoto_gateway import GPhotoGateway
from camera.parsers import is_jpeg
from camera.runner import ServiceRunner
from camera.service import CameraService
from delivery.recipient import to_chat_address
from delivery.sender_base import PhotoSender, SendError
from settings import Settings
from web import connect
from web.broadcast import SocketIOSink

logger = logging.getLogger(__name__)

PHOTOS_URL_PREFIX = "/photos"
MIN_PHONE_LENGTH = 10


def list_photos(photos_dir: Path) -> List[str]:
    if not photos_dir.is_dir():
        return []
    return sorted(p.name for p in photos_dir.iterdir() if p.is_file() and is_jpeg(p.name))


def delete_photos(photos_dir: Path) -> int:
    names = list_photos(photos_dir)
    for name in names:
        (photos_dir / name).unlink(missing_ok=True)
    return len(names)


def is_safe_filename(filename: str) -> bool:
    return bool(filename) and not any(bad in filename for bad in ("..", "/", "\\"))


def parse_send_request(data) -> Optional[tuple]:
    """Return (phone, photos) for a well-formed send request, else None."""
    if not isinstance(data, dict):
        return None
    phone = data.get("phone")
    photos = data.get("photos")
    if not isinstance(phone, str) or len(phone) < MIN_PHONE_LENGTH:
        return None
    if not isinstance(photos, list) or not all(isinstance(p, str) for p in photos):
        return None
    if not all(is_safe_filename(p) for p in photos):
        return None
    return phone, photos


def create_app(
        settings: Optional[Settings] = None,
        *,
        gateway: Optional[DeviceGateway] = None,
        sender: Optional[PhotoSender] = None,
        start_camera: bool = True,
):
    if settings is None:
        settings = Settings.from_env()

    photos_dir = settings.photos_dir.resolve()

    app = Flask(__name__)
    app.config["PHOTOS_DIR"] = photos_dir
    socketio = SocketIO(app, cors_allowed_origins="*", async_mode="threading")

    if gateway is None:
        gateway = GPhotoGateway(
            gphoto2_path=settings.gphoto2_path,
            presence_timeout=settings.presence_timeout,
        )

    sink = SocketIOSink(socketio)
    service = CameraService(
        gateway,
        photos_dir,
        sink,
        mode=settings.acquisition_mode,
        reconnect_delay=settings.reconnect_delay,
        poll_interval=settings.poll_interval,
        public_prefix=PHOTOS_URL_PREFIX,
    )
    runner = ServiceRunner(service)

    app.socketio = socketio
    app.runner = runner
    app.sink = sink
    app.sender = sender

    sink.start()
    if start_camera:
        runner.start()

    # ---------- HTTP ----------

    @app.route("/status", methods=["GET"])
    def status():
        return jsonify(runner.status())

    @app.route("/connect", methods=["GET"])
    def connect_page():
        url = f"http://{connect.local_ip()}:{settings.port}"
        try:
            qr_src = connect.qr_data_url(url)
        except Exception:
            logger.exception("Could not render QR code for %s", url)
            return "Error generating QR code", 500
        return render_template("connect.html", url=url, qr_src=qr_src)

    @app.route(f"{PHOTOS_URL_PREFIX}/<path:filename>", methods=["GET"])
    def photo(filename: str):
        if not is_safe_filename(filename):
            logger.warning("Rejected photo path %r", filename)
            return jsonify({"error": "Invalid filename"}), 400
        if not (photos_dir / filename).is_file():
            return jsonify({"error": "Photo not found"}), 404
        return send_from_directory(str(photos_dir), filename)

    # ---------- Socket.IO ----------

    @socketio.on("connect")
    def on_connect():
        logger.debug("Client connected")
        emit("camera-status", runner.status())
        emit("messaging-status", {"connected": bool(app.sender and app.sender.is_connected())})

    @socketio.on("client:request-photos")
    def on_request_photos():
        names = list_photos(photos_dir)
        for name in names:
            emit("photo-captured", {"filename": name, "path": f"{PHOTOS_URL_PREFIX}/{name}"})
        logger.debug("Sent %d existing photos", len(names))

    @socketio.on("client:reset-session")
    def on_reset_session():
        logger.info("Session reset requested")
        try:
            runner.call(service.pause)
            deleted = delete_photos(photos_dir)
            logger.info("Deleted %d photos", deleted)
            runner.call(service.reset_session)
        except Exception:
            logger.exception("Session reset failed")
            emit("camera-error", {"message": "Failed to reset session", "code": "CAMERA_ERROR"})
            return
        finally:
            runner.call(service.resume)

        socketio.emit("session-reset")

    @socketio.on("client:send-photos")
    def on_send_photos(data=None):
        parsed = parse_send_request(data)
        if parsed is None:
            logger.warning("Invalid send request: %r", data)
            emit("send-complete", {"success": False, "count": 0, "error": "Invalid request parameters"})
            return

        phone, photos = parsed
        if not photos:
            emit("send-complete", {"success": False, "count": 0, "error": "No photos selected"})
            return

        if app.sender is None or not app.sender.is_connected():
            emit("send-complete", {"success": False, "count": 0, "error": "Messaging is not connected"})
            return

        recipient = to_chat_address(phone)
        logger.info("Sending %d photos to %s", len(photos), recipient)

        def progress(current: int, total: int) -> None:
            emit("send-progress", {"current": current, "total": total})

        try:
            app.sender.send_photos(
                recipient,
                [photos_dir / name for name in photos],
                on_progress=progress,
            )
        except SendError as e:
            logger.error("Sending photos failed: %s", e)
            emit("send-complete", {"success": False, "count": 0, "error": "Failed to send photos"})
            return

        emit("send-complete", {"success": True, "count": len(photos)})

    return app
