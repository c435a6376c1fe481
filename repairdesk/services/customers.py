import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..db_models import CustomerDB
from ..errors import NotFoundError, PersistenceError, ValidationError
from ..models import CustomerFields, CustomerOut

logger = logging.getLogger(__name__)

NAME_FIELDS = ("first_name", "middle_name", "last_name", "suffix")


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def full_name(customer: CustomerDB) -> str:
    parts = [customer.first_name, customer.middle_name, customer.last_name, customer.suffix]
    return " ".join(p for p in parts if p)


def to_out(customer: CustomerDB) -> CustomerOut:
    return CustomerOut(
        id=customer.id,
        first_name=customer.first_name or "",
        middle_name=customer.middle_name or "",
        last_name=customer.last_name or "",
        suffix=customer.suffix,
        contact_number=customer.contact_number,
        created_at=customer.created_at,
    )


def get_by_contact(db: Session, contact_number: str) -> Optional[CustomerDB]:
    return db.query(CustomerDB).filter_by(contact_number=contact_number).first()


def get_customer(db: Session, customer_id: int) -> CustomerDB:
    customer = db.get(CustomerDB, customer_id)
    if not customer:
        raise NotFoundError("Customer not found")
    return customer


def check_fields(db: Session, contact_number: Optional[str], fields: CustomerFields) -> Optional[CustomerDB]:
    """
    Validate intake fields without writing anything. Returns the existing
    customer for the contact number, or None when a new one would be created.
    """
    contact = _clean(contact_number)
    if not contact:
        raise ValidationError("contact_number is required")
    existing = get_by_contact(db, contact)
    if existing:
        return existing
    if not _clean(fields.first_name) or not _clean(fields.last_name):
        raise ValidationError("first_name and last_name are required for a new customer")
    return None


def find_or_create(db: Session, contact_number: Optional[str], fields: CustomerFields) -> CustomerDB:
    """
    Return the customer owning ``contact_number``, creating it if needed.

    The unique index on contact_number settles races: the losing insert rolls
    back and reads the winner's row. Name fields of an existing customer are
    left untouched.
    """
    existing = check_fields(db, contact_number, fields)
    if existing:
        return existing

    contact = _clean(contact_number)
    customer = CustomerDB(
        first_name=_clean(fields.first_name),
        middle_name=_clean(fields.middle_name) or "",
        last_name=_clean(fields.last_name),
        suffix=_clean(fields.suffix),
        contact_number=contact,
    )
    db.add(customer)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        winner = get_by_contact(db, contact)
        if winner is None:
            raise PersistenceError("Customer insert failed without an existing record")
        logger.info("customer created concurrently, reusing", extra={"contact_number": contact})
        return winner
    db.refresh(customer)
    logger.info("customer created", extra={"customer_id": customer.id})
    return customer


def apply_fields(customer: CustomerDB, fields: CustomerFields) -> bool:
    """Copy the non-blank fields onto ``customer``; returns True when anything changed."""
    changed = False
    for name in NAME_FIELDS + ("contact_number",):
        value = _clean(getattr(fields, name))
        if value is None:
            continue
        if getattr(customer, name) != value:
            setattr(customer, name, value)
            changed = True
    return changed


def update_customer(db: Session, customer_id: int, fields: CustomerFields) -> CustomerDB:
    customer = get_customer(db, customer_id)
    if not apply_fields(customer, fields):
        return customer
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ValidationError("Contact number already belongs to another customer") from exc
    db.refresh(customer)
    return customer
