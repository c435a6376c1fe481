import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..context import AppContext
from ..db_models import TechnicianDB
from ..deps import (
    ROLES,
    create_access_token,
    get_ctx,
    get_current_technician_optional,
    get_db,
    hash_password,
    verify_password,
)
from ..errors import AuthError, ForbiddenError, ValidationError
from ..models import LoginRequest, SignupRequest

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/signup")
def signup(
    payload: SignupRequest,
    db: Session = Depends(get_db),
    current: Optional[TechnicianDB] = Depends(get_current_technician_optional),
):
    username = payload.username.strip()
    if not username or not payload.password:
        raise ValidationError("username and password are required")
    if payload.role not in ROLES:
        raise ValidationError(f"Role must be one of: {', '.join(ROLES)}")
    if payload.role != "tech" and (not current or current.role != "admin"):
        raise ForbiddenError("Only admin can create admin or staff accounts")
    if db.query(TechnicianDB).filter_by(username=username).first():
        raise ValidationError("Username already exists")
    tech = TechnicianDB(username=username, role=payload.role, hashed_password=hash_password(payload.password))
    db.add(tech)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ValidationError("Username already exists") from exc
    logger.info("technician created", extra={"username": tech.username, "role": tech.role})
    return {"username": tech.username, "role": tech.role}


@router.post("/login")
def login(payload: LoginRequest, ctx: AppContext = Depends(get_ctx), db: Session = Depends(get_db)):
    tech = db.query(TechnicianDB).filter_by(username=payload.username.strip()).first()
    if not tech or not verify_password(payload.password, tech.hashed_password):
        raise AuthError("Invalid credentials")
    token = create_access_token(ctx, tech)
    return {"token": token, "access_token": token, "token_type": "bearer", "role": tech.role}
