import io

import pytest
import requests
from PIL import Image

from repairdesk.db_models import TicketDB
from repairdesk.errors import UpstreamError
from repairdesk.services import tickets as ticket_service
from repairdesk.services.qr import QRCodeService
from repairdesk.storage import CloudinaryUploadStorage, LocalUploadStorage, UploadStorage


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self._payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.error:
            raise self.error
        return self.response

    def close(self):
        pass


class FailingStorage(UploadStorage):
    def upload(self, data, *, folder, public_id, content_type):
        raise UpstreamError("Upload timed out after 10s")


def test_check_url_defaults_to_public_endpoint(tmp_path):
    qr = QRCodeService(LocalUploadStorage(tmp_path, "http://shop.local/"), "http://shop.local/")
    assert qr.check_url("TKT-1") == "http://shop.local/api/public/TKT-1"


def test_check_url_template():
    qr = QRCodeService(FailingStorage(), "http://x", check_url_template="https://status.shop/t/{ticket_number}")
    assert qr.check_url("TKT-9") == "https://status.shop/t/TKT-9"


def test_generate_writes_300px_png_locally(tmp_path):
    qr = QRCodeService(LocalUploadStorage(tmp_path, "http://testserver"), "http://testserver")
    url = qr.generate("TKT-20261018-300-AB12")

    assert url == "http://testserver/uploads/qrcodes/TKT-20261018-300-AB12.png"
    stored = tmp_path / "qrcodes" / "TKT-20261018-300-AB12.png"
    with Image.open(io.BytesIO(stored.read_bytes())) as img:
        assert img.format == "PNG"
        assert img.size == (300, 300)


def test_cloudinary_upload_returns_secure_url():
    session = FakeSession(FakeResponse({"secure_url": "https://res.cloudinary.com/x/qr.png"}))
    storage = CloudinaryUploadStorage("demo", "unsigned", timeout=3, session=session)
    url = storage.upload(b"png", folder="qrcodes", public_id="TKT-1", content_type="image/png")

    assert url == "https://res.cloudinary.com/x/qr.png"
    called_url, kwargs = session.calls[0]
    assert called_url == "https://api.cloudinary.com/v1_1/demo/image/upload"
    assert kwargs["timeout"] == 3
    assert kwargs["data"]["folder"] == "repairdesk/qrcodes"


@pytest.mark.parametrize(
    "session",
    [
        FakeSession(error=requests.Timeout("slow")),
        FakeSession(error=requests.ConnectionError("down")),
        FakeSession(FakeResponse({"error": "bad preset"}, status_code=400)),
        FakeSession(FakeResponse({})),
    ],
)
def test_cloudinary_failures_become_upstream_errors(session):
    storage = CloudinaryUploadStorage("demo", "unsigned", session=session)
    with pytest.raises(UpstreamError):
        storage.upload(b"png", folder="tickets", public_id="p", content_type="image/png")


def test_required_qr_failure_removes_ticket(db, ctx, customer):
    ticket = ticket_service.create_ticket(
        db, customer=customer, ticket_type="Repair", unit="u", problem="p", images=[], numbers=ctx.numbers
    )
    with pytest.raises(UpstreamError):
        ticket_service.attach_qr(db, ticket, QRCodeService(FailingStorage(), "http://x"), required=True)
    assert db.query(TicketDB).count() == 0


def test_optional_qr_failure_keeps_ticket(db, ctx):
    from repairdesk.models import CustomerFields

    created = ticket_service.open_ticket(
        db,
        contact_number="09050001234",
        customer_fields=CustomerFields(first_name="Rico", last_name="Tan"),
        ticket_type="Free Checkup",
        unit="iPad",
        problem=None,
        images=[],
        numbers=ctx.numbers,
        qr=QRCodeService(FailingStorage(), "http://x"),
        qr_required=False,
    )
    assert created.qr_code_url is None
    assert "timed out" in created.qr_error
    assert created.check_url == f"http://x/api/public/{created.ticket.ticket_number}"
    assert db.query(TicketDB).count() == 1


def test_open_ticket_stores_qr_link(db, ctx):
    from repairdesk.models import CustomerFields

    created = ticket_service.open_ticket(
        db,
        contact_number="09050009999",
        customer_fields=CustomerFields(first_name="Liza", last_name="Ong"),
        ticket_type="Repair",
        unit="Xiaomi",
        problem="battery",
        images=[],
        numbers=ctx.numbers,
        qr=ctx.qr,
    )
    number = created.ticket.ticket_number
    assert created.qr_code_url.endswith(f"/uploads/qrcodes/{number}.png")
    assert ticket_service.get_ticket(db, number).qr_code_url == created.qr_code_url


class QRFailingLocalStorage(LocalUploadStorage):
    def upload(self, data, *, folder, public_id, content_type):
        if folder == "qrcodes":
            raise UpstreamError("Upload timed out after 10s")
        return super().upload(data, folder=folder, public_id=public_id, content_type=content_type)


def test_required_qr_failure_removes_uploaded_images(db, ctx, tmp_path):
    from repairdesk.models import CustomerFields

    storage = QRFailingLocalStorage(tmp_path / "media", "http://testserver")
    photo = storage.upload(b"jpeg", folder="tickets", public_id="img_front", content_type="image/jpeg")
    assert (tmp_path / "media" / "tickets" / "img_front.jpg").exists()

    with pytest.raises(UpstreamError):
        ticket_service.open_ticket(
            db,
            contact_number="09050004321",
            customer_fields=CustomerFields(first_name="Rico", last_name="Tan"),
            ticket_type="Repair",
            unit="iPhone 11",
            problem="cracked screen",
            images=["https://cdn.example/hosted.jpg", photo],
            numbers=ctx.numbers,
            qr=QRCodeService(storage, "http://testserver"),
            uploaded=[photo],
        )
    assert db.query(TicketDB).count() == 0
    assert not (tmp_path / "media" / "tickets" / "img_front.jpg").exists()


def test_local_delete_only_touches_its_own_files(tmp_path):
    storage = LocalUploadStorage(tmp_path / "media", "http://testserver")
    outside = tmp_path / "keep.txt"
    outside.write_text("x")
    url = storage.upload(b"png", folder="tickets", public_id="img_a", content_type="image/png")

    assert storage.delete("https://cdn.example/uploads/tickets/img_a.png") is False
    assert storage.delete("http://testserver/uploads/../keep.txt") is False
    assert outside.exists()
    assert storage.delete(url) is True
    assert storage.delete(url) is False


def test_cloudinary_delete_uses_the_upload_token():
    session = FakeSession(
        FakeResponse({"secure_url": "https://res.cloudinary.com/x/img.png", "delete_token": "tok-1"})
    )
    storage = CloudinaryUploadStorage("demo", "unsigned", timeout=3, session=session)
    url = storage.upload(b"png", folder="tickets", public_id="img_1", content_type="image/png")
    assert session.calls[0][1]["data"]["return_delete_token"] == "true"

    session.response = FakeResponse({"result": "ok"})
    assert storage.delete(url) is True
    called_url, kwargs = session.calls[1]
    assert called_url == "https://api.cloudinary.com/v1_1/demo/delete_by_token"
    assert kwargs["data"] == {"token": "tok-1"}
    assert storage.delete(url) is False
    assert storage.delete("https://cdn.example/other.png") is False
    assert len(session.calls) == 2
