"""
Runtime settings for the repair desk service.

Everything is read from environment variables once, at app construction.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

DATA_DIR = Path(__file__).resolve().parents[1] / "data"


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


@dataclass
class Settings:
    environment: str = "dev"
    database_url: str = f"sqlite:///{DATA_DIR / 'repairdesk.db'}"

    jwt_secret: str = "change-me"
    jwt_expire_hours: int = 8
    admin_user: str = "admin"
    admin_pass: str = "admin123"

    public_base_url: str = "http://localhost:8000"
    public_check_url: Optional[str] = None  # full template containing {ticket_number}

    upload_backend: str = "local"  # local | cloudinary
    upload_dir: Path = DATA_DIR / "uploads"
    cloudinary_cloud_name: Optional[str] = None
    cloudinary_upload_preset: Optional[str] = None
    upload_timeout_seconds: float = 10.0
    qr_required: bool = True

    log_level: str = "INFO"
    log_dir: Optional[Path] = None
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    ticket_number_attempts: int = 5
    normalize_on_startup: bool = True

    @classmethod
    def from_env(cls) -> "Settings":
        log_dir = os.getenv("LOG_DIR")
        origins = os.getenv("CORS_ORIGINS", "*")
        return cls(
            environment=os.getenv("ENVIRONMENT", "dev"),
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            jwt_secret=os.getenv("JWT_SECRET", cls.jwt_secret),
            jwt_expire_hours=int(os.getenv("JWT_EXPIRE_HOURS", "8")),
            admin_user=os.getenv("ADMIN_USER", cls.admin_user),
            admin_pass=os.getenv("ADMIN_PASS", cls.admin_pass),
            public_base_url=os.getenv("PUBLIC_BASE_URL", cls.public_base_url).rstrip("/"),
            public_check_url=os.getenv("PUBLIC_CHECK_URL") or None,
            upload_backend=os.getenv("UPLOAD_BACKEND", "local").lower(),
            upload_dir=Path(os.getenv("UPLOAD_DIR", str(DATA_DIR / "uploads"))),
            cloudinary_cloud_name=os.getenv("CLOUDINARY_CLOUD_NAME") or None,
            cloudinary_upload_preset=os.getenv("CLOUDINARY_UPLOAD_PRESET") or None,
            upload_timeout_seconds=float(os.getenv("UPLOAD_TIMEOUT_SECONDS", "10")),
            qr_required=_flag("QR_REQUIRED", "true"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_dir=Path(log_dir) if log_dir else None,
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
            ticket_number_attempts=int(os.getenv("TICKET_NUMBER_ATTEMPTS", "5")),
            normalize_on_startup=_flag("NORMALIZE_ON_STARTUP", "true"),
        )

    @property
    def is_production(self) -> bool:
        return self.environment in ("prod", "production")
