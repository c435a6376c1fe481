import hashlib
import hmac
import logging
import os
from datetime import datetime, timedelta
from typing import Optional

import jwt
from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from .context import AppContext
from .db import Base
from .db_models import TechnicianDB
from .errors import AuthError, ForbiddenError
from .services.maintenance import normalize_tickets

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
PBKDF2_ITERATIONS = 200000
ROLES = ("admin", "tech", "staff")
DELETE_ROLES = ("admin", "tech")


def get_ctx(request: Request) -> AppContext:
    return request.app.state.ctx


def get_db(ctx: AppContext = Depends(get_ctx)):
    db = ctx.session_factory()
    try:
        yield db
    finally:
        db.close()


def hash_password(password: str, salt: Optional[bytes] = None) -> str:
    salt = salt or os.urandom(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt, PBKDF2_ITERATIONS)
    return f"pbkdf2_sha256${PBKDF2_ITERATIONS}${salt.hex()}${digest.hex()}"


def verify_password(password: str, hashed: str) -> bool:
    try:
        _, iterations, salt_hex, digest_hex = hashed.split("$")
        digest = hashlib.pbkdf2_hmac("sha256", password.encode(), bytes.fromhex(salt_hex), int(iterations))
    except ValueError:
        return False
    return hmac.compare_digest(digest.hex(), digest_hex)


def create_access_token(ctx: AppContext, technician: TechnicianDB) -> str:
    payload = {
        "sub": technician.username,
        "role": technician.role,
        "tid": technician.id,
        "exp": datetime.utcnow() + timedelta(hours=ctx.settings.jwt_expire_hours),
    }
    return jwt.encode(payload, ctx.settings.jwt_secret, algorithm=ALGORITHM)


def decode_token(ctx: AppContext, token: str) -> dict:
    try:
        return jwt.decode(token, ctx.settings.jwt_secret, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthError("Token expired", status_code=403)
    except jwt.InvalidTokenError:
        raise AuthError("Invalid token", status_code=403)


def _bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_current_technician(
    authorization: Optional[str] = Header(default=None),
    ctx: AppContext = Depends(get_ctx),
    db: Session = Depends(get_db),
) -> TechnicianDB:
    token = _bearer(authorization)
    if not token:
        raise AuthError("Missing token")
    payload = decode_token(ctx, token)
    username = payload.get("sub")
    if not username:
        raise AuthError("Invalid token payload", status_code=403)
    tech = db.query(TechnicianDB).filter_by(username=username).first()
    if not tech:
        raise AuthError("Technician not found", status_code=403)
    return tech


def get_current_technician_optional(
    authorization: Optional[str] = Header(default=None),
    ctx: AppContext = Depends(get_ctx),
    db: Session = Depends(get_db),
) -> Optional[TechnicianDB]:
    if not _bearer(authorization):
        return None
    return get_current_technician(authorization, ctx, db)


def require_technician(tech: TechnicianDB = Depends(get_current_technician)) -> TechnicianDB:
    return tech


def require_delete_role(tech: TechnicianDB = Depends(get_current_technician)) -> TechnicianDB:
    if tech.role not in DELETE_ROLES:
        raise ForbiddenError("Only admin or tech accounts can delete tickets")
    return tech


def init_db(ctx: AppContext) -> None:
    Base.metadata.create_all(bind=ctx.engine)
    with ctx.session_factory() as db:
        settings = ctx.settings
        existing = db.query(TechnicianDB).filter_by(username=settings.admin_user).first()
        if not existing:
            db.add(
                TechnicianDB(
                    username=settings.admin_user,
                    role="admin",
                    hashed_password=hash_password(settings.admin_pass),
                )
            )
            db.commit()
            logger.info("seeded admin technician", extra={"username": settings.admin_user})
        if settings.normalize_on_startup:
            normalize_tickets(db)
