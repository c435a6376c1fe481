"""Console logging plus optional JSON access/error logs on disk."""

import logging
import os
from logging.handlers import RotatingFileHandler

from pythonjsonlogger import jsonlogger

from .config import Settings

ACCESS_LOGGER = "repairdesk.access"
_FILE_MAX_BYTES = 5 * 1024 * 1024


def _json_file_handler(path, level: int) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=_FILE_MAX_BYTES, backupCount=5, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    return handler


def configure_logging(settings: Settings) -> None:
    root = logging.getLogger()
    root.setLevel(settings.log_level)
    if not any(getattr(h, "_repairdesk", False) for h in root.handlers):
        console = logging.StreamHandler()
        console.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
        console._repairdesk = True
        root.addHandler(console)

    if settings.log_dir is None:
        return
    settings.log_dir.mkdir(parents=True, exist_ok=True)
    error_path = settings.log_dir / "error.log"
    if not any(getattr(h, "baseFilename", None) == os.path.abspath(error_path) for h in root.handlers):
        root.addHandler(_json_file_handler(error_path, logging.ERROR))

    access = logging.getLogger(ACCESS_LOGGER)
    access_path = settings.log_dir / "access.log"
    if not any(getattr(h, "baseFilename", None) == os.path.abspath(access_path) for h in access.handlers):
        access.addHandler(_json_file_handler(access_path, logging.INFO))
