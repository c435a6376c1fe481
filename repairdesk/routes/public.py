import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..deps import get_db
from ..errors import NotFoundError
from ..models import PublicView
from ..services import public_view
from ..services import tickets as ticket_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{ticket_number}", response_model=PublicView)
def public_ticket(ticket_number: str, db: Session = Depends(get_db)):
    try:
        ticket = ticket_service.get_ticket(db, ticket_number)
    except NotFoundError:
        logger.warning("public lookup miss", extra={"ticket_number": ticket_number})
        raise
    return public_view.project(ticket)
