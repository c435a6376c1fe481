"""
Ticket lifecycle: creation, status changes and the log journal.

Statuses may move between any of the four values; what is enforced is that
nothing outside the enum (and no blank unit/problem) is ever written. Logs
are rows of their own, so appending is a single INSERT and concurrent appends
never overwrite each other. Reads show the last LOG_DISPLAY_LIMIT entries
while storage keeps the full history.
"""

import logging
import re
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..db_models import CustomerDB, TicketDB, TicketLogDB
from ..errors import NotFoundError, PersistenceError, UpstreamError, ValidationError
from ..models import (
    LOG_DISPLAY_LIMIT,
    UNKNOWN_UNIT,
    UNSPECIFIED_PROBLEM,
    CreatedTicket,
    CustomerFields,
    LogEntryOut,
    TicketOut,
    TicketStatus,
    TicketType,
)
from ..storage import UploadStorage, generate_id
from . import customers as customer_service
from .audit import log_action
from .numbering import NumberTaken, TicketNumberGenerator, day_bounds
from .qr import QRCodeService

logger = logging.getLogger(__name__)

MAX_IMAGES = 5
LOG_ID_RE = re.compile(r"^[0-9a-f]{32}$")
ARROW = "→"

_TYPES = [t.value for t in TicketType]
_STATUSES = [s.value for s in TicketStatus]


# validation / defaulting ----------------------------------------------------


def or_default(value: Optional[str], sentinel: str) -> str:
    if value is None or not value.strip():
        return sentinel
    return value.strip()


def parse_ticket_type(value: Optional[str]) -> TicketType:
    try:
        return TicketType(value)
    except ValueError:
        raise ValidationError(f"Invalid ticket_type. Allowed: {', '.join(_TYPES)}")


def parse_status(value: Optional[str]) -> TicketStatus:
    try:
        return TicketStatus(value)
    except ValueError:
        raise ValidationError(f"Invalid status. Allowed: {', '.join(_STATUSES)}")


def stored_status(ticket: TicketDB) -> TicketStatus:
    return TicketStatus(ticket.status) if ticket.status in _STATUSES else TicketStatus.pending


def stored_type(ticket: TicketDB) -> TicketType:
    return TicketType(ticket.ticket_type) if ticket.ticket_type in _TYPES else TicketType.repair


def heal(ticket: TicketDB) -> None:
    """Bring a (possibly legacy) row back inside the allowed values before writing it."""
    ticket.status = stored_status(ticket).value
    ticket.ticket_type = stored_type(ticket).value
    ticket.unit = or_default(ticket.unit, UNKNOWN_UNIT)
    ticket.problem = or_default(ticket.problem, UNSPECIFIED_PROBLEM)
    if ticket.images is None:
        ticket.images = []


def _clean_images(images: Optional[Iterable[str]]) -> List[str]:
    return [str(i).strip() for i in (images or []) if i and str(i).strip()]


# reads ------------------------------------------------------------------------


def _new_log(text: str, author: str, ticket_id: Optional[int] = None) -> TicketLogDB:
    return TicketLogDB(
        id=generate_id(),
        ticket_id=ticket_id,
        text=text,
        author=author,
        created_at=datetime.utcnow(),
    )


def recent_logs(db: Session, ticket_id: int, limit: int = LOG_DISPLAY_LIMIT) -> List[TicketLogDB]:
    rows = (
        db.query(TicketLogDB)
        .filter(TicketLogDB.ticket_id == ticket_id)
        .order_by(TicketLogDB.seq.desc())
        .limit(limit)
        .all()
    )
    return list(reversed(rows))


def recent_logs_by_ticket(
    db: Session, ticket_ids: List[int], limit: int = LOG_DISPLAY_LIMIT
) -> Dict[int, List[TicketLogDB]]:
    """Last ``limit`` logs of every ticket in ``ticket_ids``, in one query."""
    if not ticket_ids:
        return {}
    rank = (
        func.row_number()
        .over(partition_by=TicketLogDB.ticket_id, order_by=TicketLogDB.seq.desc())
        .label("log_rank")
    )
    ranked = (
        select(TicketLogDB.seq.label("seq"), rank)
        .where(TicketLogDB.ticket_id.in_(ticket_ids))
        .subquery()
    )
    rows = (
        db.query(TicketLogDB)
        .join(ranked, ranked.c.seq == TicketLogDB.seq)
        .filter(ranked.c.log_rank <= limit)
        .order_by(TicketLogDB.ticket_id, TicketLogDB.seq)
        .all()
    )
    grouped: Dict[int, List[TicketLogDB]] = {tid: [] for tid in ticket_ids}
    for row in rows:
        grouped[row.ticket_id].append(row)
    return grouped


def to_out(
    db: Session,
    ticket: TicketDB,
    log_limit: int = LOG_DISPLAY_LIMIT,
    logs: Optional[List[TicketLogDB]] = None,
) -> TicketOut:
    if logs is None:
        logs = recent_logs(db, ticket.id, log_limit)
    return TicketOut(
        ticket_number=ticket.ticket_number,
        ticket_type=stored_type(ticket),
        customer=customer_service.to_out(ticket.customer) if ticket.customer else None,
        unit=or_default(ticket.unit, UNKNOWN_UNIT),
        problem=or_default(ticket.problem, UNSPECIFIED_PROBLEM),
        status=stored_status(ticket),
        images=list(ticket.images or []),
        logs=[LogEntryOut(id=l.id, text=l.text, author=l.author, created_at=l.created_at) for l in logs],
        qr_code_url=ticket.qr_code_url,
        created_at=ticket.created_at,
        updated_at=ticket.updated_at,
    )


def load_ticket(db: Session, ticket_number: str) -> TicketDB:
    ticket = db.query(TicketDB).filter_by(ticket_number=ticket_number).first()
    if not ticket:
        raise NotFoundError("Ticket not found")
    return ticket


def get_ticket(db: Session, ticket_number: str) -> TicketOut:
    return to_out(db, load_ticket(db, ticket_number))


def list_tickets(db: Session) -> List[TicketOut]:
    rows = (
        db.query(TicketDB)
        .options(selectinload(TicketDB.customer))
        .order_by(TicketDB.created_at.desc(), TicketDB.id.desc())
        .all()
    )
    logs = recent_logs_by_ticket(db, [t.id for t in rows])
    return [to_out(db, t, logs=logs[t.id]) for t in rows]


def issued_on(db: Session, now: datetime) -> int:
    start, end = day_bounds(now)
    return (
        db.query(func.count(TicketDB.id))
        .filter(TicketDB.created_at >= start, TicketDB.created_at < end)
        .scalar()
        or 0
    )


def _number_exists(db: Session, ticket_number: str) -> bool:
    return db.query(TicketDB.id).filter_by(ticket_number=ticket_number).first() is not None


def _commit(db: Session, what: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("%s failed", what)
        raise PersistenceError(f"{what} failed; no changes were saved") from exc


# create -----------------------------------------------------------------------


def create_ticket(
    db: Session,
    *,
    customer: CustomerDB,
    ticket_type: str,
    unit: Optional[str],
    problem: Optional[str],
    images: Optional[Iterable[str]],
    numbers: TicketNumberGenerator,
) -> TicketDB:
    kind = parse_ticket_type(ticket_type)
    safe_unit = or_default(unit, UNKNOWN_UNIT)
    safe_problem = or_default(problem, UNSPECIFIED_PROBLEM)
    image_urls = _clean_images(images)
    if len(image_urls) > MAX_IMAGES:
        raise ValidationError(f"At most {MAX_IMAGES} images per ticket")

    intro = (
        f"[SYSTEM] {kind.value} ticket created for {customer_service.full_name(customer)} "
        f"| Unit: {safe_unit} | Problem: {safe_problem}"
    )

    def _claim(number: str, now: datetime) -> TicketDB:
        if _number_exists(db, number):
            raise NumberTaken(number)
        # created_at must fall on the day encoded in the number
        ticket = TicketDB(
            ticket_number=number,
            ticket_type=kind.value,
            customer_id=customer.id,
            unit=safe_unit,
            problem=safe_problem,
            status=TicketStatus.pending.value,
            images=image_urls,
            created_at=now,
            updated_at=now,
        )
        ticket.logs.append(_new_log(intro, "system"))
        db.add(ticket)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            if _number_exists(db, number):
                raise NumberTaken(number) from exc
            raise PersistenceError("Ticket insert failed") from exc
        return ticket

    ticket = numbers.assign(lambda now: issued_on(db, now), _claim)
    log_action("ticket_create", f"{ticket.ticket_number} type={kind.value} customer={customer.id}")
    return ticket


def discard_uploads(storage: UploadStorage, urls: Iterable[str]) -> int:
    """Remove uploads left behind by a failed intake; hosted URLs we do not own are skipped."""
    removed = sum(1 for url in urls if storage.delete(url))
    if removed:
        logger.info("discarded orphaned uploads", extra={"count": removed})
    return removed


def attach_qr(
    db: Session,
    ticket: TicketDB,
    qr: QRCodeService,
    required: bool = True,
    owned_images: Iterable[str] = (),
) -> Tuple[Optional[str], Optional[str]]:
    """
    Generate and store the QR artifact of a freshly created ticket.

    Returns ``(url, None)`` on success. On failure when ``required`` the
    ticket is deleted together with ``owned_images`` (the files uploaded for
    it) and the UpstreamError re-raised; otherwise the ticket stays without a
    QR and ``(None, message)`` is returned.
    """
    try:
        url = qr.generate(ticket.ticket_number)
    except UpstreamError as exc:
        if required:
            logger.error("qr generation failed, rolling back ticket", extra={"ticket_number": ticket.ticket_number})
            db.delete(ticket)
            _commit(db, "Ticket rollback")
            discard_uploads(qr.storage, owned_images)
            raise
        logger.warning(
            "qr generation failed, keeping ticket without qr",
            extra={"ticket_number": ticket.ticket_number, "error": exc.message},
        )
        return None, exc.message
    ticket.qr_code_url = url
    _commit(db, "QR link save")
    return url, None


def check_intake(
    db: Session, *, contact_number: Optional[str], customer_fields: CustomerFields, ticket_type: str
) -> None:
    """Everything open_ticket would reject up front, checked before any file is uploaded."""
    parse_ticket_type(ticket_type)
    customer_service.check_fields(db, contact_number, customer_fields)


def open_ticket(
    db: Session,
    *,
    contact_number: Optional[str],
    customer_fields: CustomerFields,
    ticket_type: str,
    unit: Optional[str],
    problem: Optional[str],
    images: Optional[Iterable[str]],
    numbers: TicketNumberGenerator,
    qr: Optional[QRCodeService] = None,
    qr_required: bool = True,
    uploaded: Iterable[str] = (),
) -> CreatedTicket:
    """
    Full intake flow: customer find-or-create, numbering, persistence, QR.

    ``uploaded`` names the entries of ``images`` that were uploaded for this
    ticket; they are removed again if the QR step rolls the ticket back.
    """
    parse_ticket_type(ticket_type)
    customer = customer_service.find_or_create(db, contact_number, customer_fields)
    ticket = create_ticket(
        db,
        customer=customer,
        ticket_type=ticket_type,
        unit=unit,
        problem=problem,
        images=images,
        numbers=numbers,
    )
    qr_url, qr_error = None, None
    check_url = ""
    if qr is not None:
        check_url = qr.check_url(ticket.ticket_number)
        qr_url, qr_error = attach_qr(db, ticket, qr, required=qr_required, owned_images=list(uploaded))
    return CreatedTicket(ticket=to_out(db, ticket), check_url=check_url, qr_code_url=qr_url, qr_error=qr_error)


# mutations ----------------------------------------------------------------------


def update_status(
    db: Session,
    ticket_number: str,
    status: Optional[str],
    actor: str,
    unit: Optional[str] = None,
    problem: Optional[str] = None,
) -> TicketOut:
    new_status = parse_status(status)
    ticket = load_ticket(db, ticket_number)
    heal(ticket)
    if unit is not None:
        ticket.unit = or_default(unit, UNKNOWN_UNIT)
    if problem is not None:
        ticket.problem = or_default(problem, UNSPECIFIED_PROBLEM)
    now = datetime.utcnow()
    ticket.status = new_status.value
    ticket.updated_at = now
    text = (
        f"[SYSTEM] Ticket marked as {new_status.value.upper()} by {actor} on {now:%Y-%m-%d %H:%M:%S} UTC"
        f" | Unit: {ticket.unit} | Problem: {ticket.problem}"
    )
    db.add(_new_log(text, actor, ticket.id))
    _commit(db, "Status update")
    log_action("ticket_status", f"{ticket_number} -> {new_status.value}", actor)
    return to_out(db, ticket)


def append_log(db: Session, ticket_number: str, text: Optional[str], actor: str) -> TicketOut:
    if text is None or not text.strip():
        raise ValidationError("log text is required")
    ticket = load_ticket(db, ticket_number)
    heal(ticket)
    ticket.updated_at = datetime.utcnow()
    db.add(_new_log(text.strip(), actor, ticket.id))
    _commit(db, "Log append")
    return to_out(db, ticket)


def delete_log(db: Session, ticket_number: str, log_id: str, actor: str = "system") -> TicketOut:
    if not LOG_ID_RE.match(log_id or ""):
        raise ValidationError("Invalid log id")
    ticket = load_ticket(db, ticket_number)
    result = db.execute(
        delete(TicketLogDB).where(TicketLogDB.ticket_id == ticket.id, TicketLogDB.id == log_id)
    )
    if result.rowcount == 0:
        db.rollback()
        raise NotFoundError("Log entry not found")
    heal(ticket)
    ticket.updated_at = datetime.utcnow()
    _commit(db, "Log delete")
    log_action("ticket_log_delete", f"{ticket_number} log={log_id}", actor)
    return to_out(db, ticket)


def update_details(
    db: Session,
    ticket_number: str,
    fields: CustomerFields,
    unit: Optional[str],
    problem: Optional[str],
    actor: str = "system",
) -> TicketOut:
    """
    Edit the linked customer and the ticket's unit/problem in one transaction
    and record a single before → after audit line.
    """
    ticket = load_ticket(db, ticket_number)
    customer = ticket.customer
    if customer is None:
        raise NotFoundError("Customer not found")
    heal(ticket)

    before_name = customer_service.full_name(customer)
    before_contact = customer.contact_number
    before_unit, before_problem = ticket.unit, ticket.problem

    customer_service.apply_fields(customer, fields)
    if unit is not None:
        ticket.unit = or_default(unit, UNKNOWN_UNIT)
    if problem is not None:
        ticket.problem = or_default(problem, UNSPECIFIED_PROBLEM)
    ticket.updated_at = datetime.utcnow()

    diff = " | ".join(
        [
            f"Customer: {before_name} {ARROW} {customer_service.full_name(customer)}",
            f"Contact: {before_contact or 'N/A'} {ARROW} {customer.contact_number or 'N/A'}",
            f"Unit: {before_unit} {ARROW} {ticket.unit}",
            f"Problem: {before_problem} {ARROW} {ticket.problem}",
        ]
    )
    db.add(_new_log(f"Update by {actor} - {diff}", actor, ticket.id))
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ValidationError("Contact number already belongs to another customer") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("ticket details update failed", extra={"ticket_number": ticket_number})
        raise PersistenceError("Ticket details update failed; no changes were saved") from exc
    log_action("ticket_details", f"{ticket_number} {diff}", actor)
    return to_out(db, ticket)


def delete_ticket(db: Session, ticket_number: str, actor: str) -> None:
    ticket = load_ticket(db, ticket_number)
    db.delete(ticket)
    _commit(db, "Ticket delete")
    log_action("ticket_delete", ticket_number, actor)
