import logging
from typing import Dict

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..db_models import CustomerDB, TicketDB
from ..models import UNKNOWN_UNIT, UNSPECIFIED_PROBLEM, TicketStatus, TicketType
from .audit import log_action

logger = logging.getLogger(__name__)


def normalize_tickets(db: Session) -> Dict[str, int]:
    """Backfill rows written before type/status/unit/problem were enforced."""
    counts = {"ticket_type": 0, "status": 0, "unit": 0, "problem": 0, "images": 0}
    types = [t.value for t in TicketType]
    statuses = [s.value for s in TicketStatus]

    counts["ticket_type"] = (
        db.query(TicketDB)
        .filter(or_(TicketDB.ticket_type.is_(None), TicketDB.ticket_type.notin_(types)))
        .update({TicketDB.ticket_type: TicketType.repair.value}, synchronize_session=False)
    )
    counts["status"] = (
        db.query(TicketDB)
        .filter(or_(TicketDB.status.is_(None), TicketDB.status.notin_(statuses)))
        .update({TicketDB.status: TicketStatus.pending.value}, synchronize_session=False)
    )
    # blank checks need strip(), so these are done row by row
    for t in db.query(TicketDB).all():
        if t.unit is None or not t.unit.strip():
            t.unit = UNKNOWN_UNIT
            counts["unit"] += 1
        if t.problem is None or not t.problem.strip():
            t.problem = UNSPECIFIED_PROBLEM
            counts["problem"] += 1
        if t.images is None:
            t.images = []
            counts["images"] += 1
    db.commit()
    if any(counts.values()):
        log_action("tickets_normalized", str(counts))
    return counts


def purge_orphan_tickets(db: Session) -> int:
    """Delete tickets whose customer record no longer exists."""
    orphans = (
        db.query(TicketDB)
        .outerjoin(CustomerDB, TicketDB.customer_id == CustomerDB.id)
        .filter(CustomerDB.id.is_(None))
        .all()
    )
    for t in orphans:
        db.delete(t)
    db.commit()
    if orphans:
        log_action("tickets_purged", ", ".join(t.ticket_number for t in orphans))
    return len(orphans)
