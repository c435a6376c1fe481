import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session

from ..context import AppContext
from ..db_models import TechnicianDB
from ..deps import get_ctx, get_db, require_delete_role, require_technician
from ..errors import AppError, ValidationError
from ..models import CreatedTicket, CustomerFields, LogRequest, StatusUpdateRequest, TicketDetailsRequest, TicketOut
from ..services import tickets as ticket_service
from ..storage import generate_id

logger = logging.getLogger(__name__)

router = APIRouter()

IMAGE_FOLDER = "tickets"


async def _upload_images(ctx: AppContext, files: List[UploadFile]) -> List[str]:
    urls: List[str] = []
    try:
        for f in files:
            data = await f.read()
            if not data:
                continue
            urls.append(
                await asyncio.to_thread(
                    ctx.storage.upload,
                    data,
                    folder=IMAGE_FOLDER,
                    public_id=generate_id("img"),
                    content_type=f.content_type or "application/octet-stream",
                )
            )
    except AppError:
        await asyncio.to_thread(ticket_service.discard_uploads, ctx.storage, urls)
        raise
    return urls


@router.post("", response_model=CreatedTicket)
async def create_ticket(
    ticket_type: str = Form(...),
    contact_number: str = Form(...),
    first_name: Optional[str] = Form(None),
    middle_name: Optional[str] = Form(None),
    last_name: Optional[str] = Form(None),
    suffix: Optional[str] = Form(None),
    unit: Optional[str] = Form(None),
    problem: Optional[str] = Form(None),
    image_urls: Optional[List[str]] = Form(None),
    images: Optional[List[UploadFile]] = File(None),
    ctx: AppContext = Depends(get_ctx),
    db: Session = Depends(get_db),
):
    customer_fields = CustomerFields(
        first_name=first_name,
        middle_name=middle_name,
        last_name=last_name,
        suffix=suffix,
    )
    files = [f for f in (images or []) if f.filename]
    hosted = list(image_urls or [])
    if len(files) + len(hosted) > ticket_service.MAX_IMAGES:
        raise ValidationError(f"At most {ticket_service.MAX_IMAGES} images per ticket")
    await asyncio.to_thread(
        ticket_service.check_intake,
        db,
        contact_number=contact_number,
        customer_fields=customer_fields,
        ticket_type=ticket_type,
    )
    uploaded = await _upload_images(ctx, files)
    try:
        # numbering, persistence and the QR upload all block
        return await asyncio.to_thread(
            ticket_service.open_ticket,
            db,
            contact_number=contact_number,
            customer_fields=customer_fields,
            ticket_type=ticket_type,
            unit=unit,
            problem=problem,
            images=hosted + uploaded,
            numbers=ctx.numbers,
            qr=ctx.qr,
            qr_required=ctx.settings.qr_required,
            uploaded=uploaded,
        )
    except AppError:
        await asyncio.to_thread(ticket_service.discard_uploads, ctx.storage, uploaded)
        raise


@router.get("", response_model=List[TicketOut], dependencies=[Depends(require_technician)])
def list_tickets(db: Session = Depends(get_db)):
    return ticket_service.list_tickets(db)


@router.get("/{ticket_number}", response_model=TicketOut, dependencies=[Depends(require_technician)])
def get_ticket(ticket_number: str, db: Session = Depends(get_db)):
    return ticket_service.get_ticket(db, ticket_number)


@router.put("/{ticket_number}/status", response_model=TicketOut)
def update_status(
    ticket_number: str,
    payload: StatusUpdateRequest,
    db: Session = Depends(get_db),
    tech: TechnicianDB = Depends(require_technician),
):
    return ticket_service.update_status(
        db, ticket_number, payload.status, tech.username, unit=payload.unit, problem=payload.problem
    )


@router.put("/{ticket_number}/log", response_model=TicketOut)
def add_log(
    ticket_number: str,
    payload: LogRequest,
    db: Session = Depends(get_db),
    tech: TechnicianDB = Depends(require_technician),
):
    return ticket_service.append_log(db, ticket_number, payload.log, tech.username)


@router.delete("/{ticket_number}/logs/{log_id}", response_model=TicketOut)
def delete_log(
    ticket_number: str,
    log_id: str,
    db: Session = Depends(get_db),
    tech: TechnicianDB = Depends(require_technician),
):
    return ticket_service.delete_log(db, ticket_number, log_id, tech.username)


@router.post("/update/{ticket_number}", response_model=TicketOut)
def update_details(
    ticket_number: str,
    payload: TicketDetailsRequest,
    db: Session = Depends(get_db),
    tech: TechnicianDB = Depends(require_technician),
):
    fields = CustomerFields(**payload.model_dump(include=set(CustomerFields.model_fields)))
    return ticket_service.update_details(
        db, ticket_number, fields, payload.unit, payload.problem, actor=tech.username
    )


@router.delete("/{ticket_number}")
def delete_ticket(
    ticket_number: str,
    db: Session = Depends(get_db),
    tech: TechnicianDB = Depends(require_delete_role),
):
    ticket_service.delete_ticket(db, ticket_number, tech.username)
    return {"deleted": ticket_number}
