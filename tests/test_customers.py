from concurrent.futures import ThreadPoolExecutor

import pytest

from repairdesk.db_models import CustomerDB
from repairdesk.errors import NotFoundError, ValidationError
from repairdesk.models import CustomerFields
from repairdesk.services import customers as customer_service

NAMES = CustomerFields(first_name="Mark", middle_name="D.", last_name="Cruz")


def test_find_or_create_creates_then_reuses(db):
    first = customer_service.find_or_create(db, "09987654321", NAMES)
    again = customer_service.find_or_create(
        db, " 09987654321 ", CustomerFields(first_name="Someone", last_name="Else")
    )
    assert again.id == first.id
    assert again.first_name == "Mark"
    assert db.query(CustomerDB).count() == 1


@pytest.mark.parametrize("contact", [None, "", "   "])
def test_contact_number_is_required(db, contact):
    with pytest.raises(ValidationError):
        customer_service.find_or_create(db, contact, NAMES)


def test_new_customer_needs_first_and_last_name(db):
    with pytest.raises(ValidationError):
        customer_service.find_or_create(db, "0911", CustomerFields(first_name="Only"))


def test_check_fields_writes_nothing(db, customer):
    assert customer_service.check_fields(db, " 09171234567 ", CustomerFields()).id == customer.id
    assert customer_service.check_fields(db, "09998887777", CustomerFields(first_name="Jo", last_name="Cruz")) is None
    with pytest.raises(ValidationError):
        customer_service.check_fields(db, "09998887777", CustomerFields(first_name="Jo"))
    assert db.query(CustomerDB).count() == 1


def test_lost_insert_race_returns_existing_record(db, monkeypatch):
    winner = customer_service.find_or_create(db, "09180001111", NAMES)
    real_lookup = customer_service.get_by_contact
    calls = {"n": 0}

    def stale_lookup(session, contact):
        # the first read happens before the other request committed
        calls["n"] += 1
        if calls["n"] == 1:
            return None
        return real_lookup(session, contact)

    monkeypatch.setattr(customer_service, "get_by_contact", stale_lookup)
    loser = customer_service.find_or_create(db, "09180001111", CustomerFields(first_name="X", last_name="Y"))
    assert loser.id == winner.id
    assert db.query(CustomerDB).count() == 1


def test_concurrent_find_or_create_yields_one_customer(ctx):
    def worker(i):
        with ctx.session_factory() as session:
            return customer_service.find_or_create(
                session, "09095554444", CustomerFields(first_name=f"Name{i}", last_name="Lim")
            ).id

    with ThreadPoolExecutor(max_workers=8) as pool:
        ids = set(pool.map(worker, range(16)))

    assert len(ids) == 1
    with ctx.session_factory() as session:
        assert session.query(CustomerDB).filter_by(contact_number="09095554444").count() == 1


def test_update_customer_is_partial(db, customer):
    updated = customer_service.update_customer(db, customer.id, CustomerFields(last_name="Santos", suffix="Jr."))
    assert updated.first_name == "Ana"
    assert updated.last_name == "Santos"
    assert updated.suffix == "Jr."
    assert updated.contact_number == "09171234567"


def test_update_customer_rejects_taken_contact(db, customer):
    other = customer_service.find_or_create(db, "09332221111", NAMES)
    with pytest.raises(ValidationError):
        customer_service.update_customer(db, other.id, CustomerFields(contact_number="09171234567"))
    db.expire_all()
    assert customer_service.get_customer(db, other.id).contact_number == "09332221111"


def test_update_unknown_customer(db):
    with pytest.raises(NotFoundError):
        customer_service.update_customer(db, 999, NAMES)
