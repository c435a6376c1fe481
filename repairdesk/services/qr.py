import io
import logging
from typing import Optional

import qrcode

from ..storage import UploadStorage

logger = logging.getLogger(__name__)

QR_FOLDER = "qrcodes"
QR_WIDTH = 300


class QRCodeService:
    """Renders the public status-check link of a ticket as a PNG and uploads it."""

    def __init__(self, storage: UploadStorage, base_url: str, check_url_template: Optional[str] = None) -> None:
        self.storage = storage
        self.base_url = base_url.rstrip("/")
        self.check_url_template = check_url_template

    def check_url(self, ticket_number: str) -> str:
        if self.check_url_template:
            return self.check_url_template.format(ticket_number=ticket_number)
        return f"{self.base_url}/api/public/{ticket_number}"

    def render_png(self, url: str) -> bytes:
        qr = qrcode.QRCode(border=2)
        qr.add_data(url)
        qr.make(fit=True)
        img = qr.make_image(fill_color="black", back_color="white").get_image()
        img = img.resize((QR_WIDTH, QR_WIDTH))
        buf = io.BytesIO()
        img.save(buf, format="PNG")
        return buf.getvalue()

    def generate(self, ticket_number: str) -> str:
        png = self.render_png(self.check_url(ticket_number))
        url = self.storage.upload(png, folder=QR_FOLDER, public_id=ticket_number, content_type="image/png")
        logger.info("qr code uploaded", extra={"ticket_number": ticket_number, "url": url})
        return url
