from datetime import datetime
from types import SimpleNamespace

from repairdesk.models import CustomerFields
from repairdesk.services import public_view
from repairdesk.services import tickets as ticket_service


def test_projection_hides_contact_details(db, ctx, customer):
    ticket = ticket_service.create_ticket(
        db, customer=customer, ticket_type="Repair", unit="Redmi 9", problem="charging port",
        images=["http://img/a.png"], numbers=ctx.numbers,
    )
    view = public_view.project(ticket_service.get_ticket(db, ticket.ticket_number))

    assert view.ticket_number == ticket.ticket_number
    assert view.customer.first_name == "Ana"
    assert view.customer.last_name == "Reyes"
    assert view.status == "Pending"
    assert view.images == ["http://img/a.png"]
    dumped = view.model_dump()
    assert "contact_number" not in dumped["customer"]
    assert "09171234567" not in str(dumped)


def test_projection_of_sparse_record_has_every_field():
    view = public_view.project(SimpleNamespace(ticket_number="TKT-1"))
    assert view.ticket_number == "TKT-1"
    assert view.customer.first_name == ""
    assert view.customer.suffix == ""
    assert view.unit == ""
    assert view.problem == ""
    assert view.status == ""
    assert view.images == []
    assert view.logs == []
    assert view.created_at is None
    assert view.qr_code_url == ""


def test_projection_ignores_non_string_values():
    record = SimpleNamespace(
        ticket_number=42,
        customer=SimpleNamespace(first_name=None, last_name=["x"]),
        unit=None,
        images=["ok.png", None, 7],
    )
    view = public_view.project(record)
    assert view.ticket_number == ""
    assert view.customer.last_name == ""
    assert view.images == ["ok.png"]


def test_projection_keeps_last_ten_logs():
    logs = [SimpleNamespace(text=f"log {i}", created_at=datetime(2026, 1, 1, 0, i)) for i in range(12)]
    view = public_view.project(SimpleNamespace(ticket_number="TKT-2", logs=logs))
    assert [l.text for l in view.logs] == [f"log {i}" for i in range(2, 12)]
    assert not hasattr(view.logs[0], "id")


def test_projection_after_detail_edit_hides_both_contacts(db, ctx, customer):
    ticket = ticket_service.create_ticket(
        db, customer=customer, ticket_type="Repair", unit="Redmi 9", problem="charging port",
        images=[], numbers=ctx.numbers,
    )
    ticket_service.update_details(
        db, ticket.ticket_number, CustomerFields(contact_number="09170000000"), None, None, actor="admin"
    )
    view = public_view.project(ticket_service.get_ticket(db, ticket.ticket_number))

    dumped = str(view.model_dump())
    assert "09171234567" not in dumped
    assert "09170000000" not in dumped
    assert view.logs[-1].text == (
        "Update by admin - Customer: Ana P. Reyes → Ana P. Reyes | Contact: [hidden] "
        "| Unit: Redmi 9 → Redmi 9 | Problem: charging port → charging port"
    )


def test_projection_scrubs_phone_from_older_intro_lines():
    record = SimpleNamespace(
        ticket_number="TKT-20250101-300-OLD1",
        customer=SimpleNamespace(first_name="Ana", contact_number="09171234567"),
        logs=[
            SimpleNamespace(text="[SYSTEM] Repair ticket created for Ana Reyes (0917 123 4567) | Unit: X"),
            SimpleNamespace(text="called 09171234567, no answer"),
        ],
    )
    view = public_view.project(record)
    assert [l.text for l in view.logs] == [
        "[SYSTEM] Repair ticket created for Ana Reyes | Unit: X",
        "called [hidden], no answer",
    ]
    assert view.ticket_number == "TKT-20250101-300-OLD1"
