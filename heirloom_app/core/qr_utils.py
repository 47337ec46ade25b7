"""QR code for an answer link, embedded in request emails as a data URI."""

import base64
import io
import logging

from PIL import Image
import qrcode

logger = logging.getLogger(__name__)


def _png_bytes(url: str, size: int) -> bytes:
    qr = qrcode.QRCode(error_correction=qrcode.constants.ERROR_CORRECT_M, border=2)
    qr.add_data(url)
    image = qr.make_image().get_image().resize((size, size), Image.NEAREST)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def generate_qr_code_data_uri(url: str, size: int = 200) -> str:
    """Return ``url`` as a PNG QR code data URI, or "" if it cannot be drawn.

    The email still carries the plain link, so a missing code is not fatal.
    """
    try:
        png = _png_bytes(url, size)
    except Exception:
        logger.exception("Could not draw QR code for answer link")
        return ""
    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")
