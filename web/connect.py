"""
Join page helpers: the LAN address phones should open, and its QR code.
"""
import base64
import io
import logging
import socket

import qrcode
import qrcode.image.svg

logger = logging.getLogger(__name__)


def local_ip() -> str:
    """First non-loopback IPv4 address of this machine, or "localhost"."""
    # UDP connect sends nothing; it only picks the outbound interface.
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.connect(("8.8.8.8", 80))
        ip = sock.getsockname()[0]
    except OSError as e:
        logger.debug("Could not determine LAN address: %s", e)
        return "localhost"
    finally:
        sock.close()

    if ip.startswith("127."):
        return "localhost"
    return ip


def qr_data_url(url: str) -> str:
    """Render ``url`` as an SVG QR code inlined in a data: URL."""
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        border=2,
        image_factory=qrcode.image.svg.SvgPathImage,
    )
    qr.add_data(url)
    qr.make(fit=True)

    buf = io.BytesIO()
    qr.make_image().save(buf)
    encoded = base64.b64encode(buf.getvalue()).decode("ascii")
    return f"data:image/svg+xml;base64,{encoded}"
