"""
Upload storage for ticket photos and QR codes.

Two backends: files on local disk (served under /uploads) or an unsigned
Cloudinary upload over HTTP.
"""

import logging
import re
import threading
from pathlib import Path
from typing import Dict, Optional
from uuid import uuid4

import requests

from .config import Settings
from .errors import UpstreamError

logger = logging.getLogger(__name__)

CLOUDINARY_API = "https://api.cloudinary.com/v1_1/{cloud}/image/upload"
CLOUDINARY_DELETE_API = "https://api.cloudinary.com/v1_1/{cloud}/delete_by_token"

_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/webp": ".webp",
    "image/gif": ".gif",
}


def generate_id(prefix: str = "") -> str:
    token = uuid4().hex
    return f"{prefix}_{token}" if prefix else token


def _safe_name(value: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]", "_", value).strip("._") or generate_id()


class UploadStorage:
    def upload(self, data: bytes, *, folder: str, public_id: str, content_type: str) -> str:
        raise NotImplementedError

    def delete(self, url: str) -> bool:
        """
        Remove an object this backend uploaded. URLs it does not own are
        ignored. Returns True when something was removed; failures are logged
        and reported as False, never raised.
        """
        return False

    def close(self) -> None:
        pass


class LocalUploadStorage(UploadStorage):
    def __init__(self, root: Path, base_url: str) -> None:
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def upload(self, data: bytes, *, folder: str, public_id: str, content_type: str) -> str:
        ext = _EXTENSIONS.get(content_type.lower(), "")
        name = _safe_name(public_id)
        if ext and not name.lower().endswith(ext):
            name += ext
        dest_dir = self.root / _safe_name(folder)
        try:
            dest_dir.mkdir(parents=True, exist_ok=True)
            (dest_dir / name).write_bytes(data)
        except OSError as exc:
            raise UpstreamError(f"Could not store upload: {exc}") from exc
        return f"{self.base_url}/uploads/{dest_dir.name}/{name}"

    def delete(self, url: str) -> bool:
        prefix = f"{self.base_url}/uploads/"
        if not url.startswith(prefix):
            return False
        root = self.root.resolve()
        path = (root / url[len(prefix):]).resolve()
        if root not in path.parents:
            return False
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            logger.warning("could not remove upload", extra={"url": url, "error": str(exc)})
            return False
        return True


class CloudinaryUploadStorage(UploadStorage):
    """
    Unsigned uploads. Each upload asks for a delete token so the object can
    be removed without an API secret. Tokens live in memory only and expire
    ten minutes after the upload.
    """

    def __init__(
        self,
        cloud_name: str,
        upload_preset: str,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
        root_folder: str = "repairdesk",
    ) -> None:
        self.url = CLOUDINARY_API.format(cloud=cloud_name)
        self.delete_url = CLOUDINARY_DELETE_API.format(cloud=cloud_name)
        self.upload_preset = upload_preset
        self.timeout = timeout
        self.root_folder = root_folder
        self.session = session or requests.Session()
        self._delete_tokens: Dict[str, str] = {}
        self._lock = threading.Lock()

    def upload(self, data: bytes, *, folder: str, public_id: str, content_type: str) -> str:
        try:
            resp = self.session.post(
                self.url,
                data={
                    "upload_preset": self.upload_preset,
                    "folder": f"{self.root_folder}/{folder}",
                    "public_id": public_id,
                    "return_delete_token": "true",
                },
                files={"file": (public_id, data, content_type)},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            body = resp.json()
        except requests.Timeout as exc:
            raise UpstreamError(f"Upload timed out after {self.timeout}s") from exc
        except (requests.RequestException, ValueError) as exc:
            raise UpstreamError(f"Upload failed: {exc}") from exc
        secure_url = body.get("secure_url")
        if not secure_url:
            raise UpstreamError("Upload response had no secure_url")
        if body.get("delete_token"):
            with self._lock:
                self._delete_tokens[secure_url] = body["delete_token"]
        return secure_url

    def delete(self, url: str) -> bool:
        with self._lock:
            token = self._delete_tokens.pop(url, None)
        if token is None:
            return False
        try:
            resp = self.session.post(self.delete_url, data={"token": token}, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("could not remove upload", extra={"url": url, "error": str(exc)})
            return False
        return True

    def close(self) -> None:
        self.session.close()


def build_storage(settings: Settings) -> UploadStorage:
    if settings.upload_backend == "cloudinary":
        if not settings.cloudinary_cloud_name or not settings.cloudinary_upload_preset:
            raise ValueError("CLOUDINARY_CLOUD_NAME and CLOUDINARY_UPLOAD_PRESET are required")
        return CloudinaryUploadStorage(
            settings.cloudinary_cloud_name,
            settings.cloudinary_upload_preset,
            timeout=settings.upload_timeout_seconds,
        )
    logger.info("using local upload storage", extra={"upload_dir": str(settings.upload_dir)})
    return LocalUploadStorage(settings.upload_dir, settings.public_base_url)
