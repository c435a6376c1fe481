import logging
from dataclasses import dataclass

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from .config import Settings
from .db import build_engine, build_session_factory
from .services.numbering import TicketNumberGenerator
from .services.qr import QRCodeService
from .storage import UploadStorage, build_storage

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Process-wide collaborators, built once at startup and handed to each request."""

    settings: Settings
    engine: Engine
    session_factory: sessionmaker
    numbers: TicketNumberGenerator
    storage: UploadStorage
    qr: QRCodeService

    def close(self) -> None:
        self.storage.close()
        self.engine.dispose()
        logger.info("app context closed")


def build_context(settings: Settings) -> AppContext:
    engine = build_engine(settings.database_url)
    storage = build_storage(settings)
    return AppContext(
        settings=settings,
        engine=engine,
        session_factory=build_session_factory(engine),
        numbers=TicketNumberGenerator(max_attempts=settings.ticket_number_attempts),
        storage=storage,
        qr=QRCodeService(storage, settings.public_base_url, settings.public_check_url),
    )
