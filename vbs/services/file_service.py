"""
File service — image uploads (provider logos, cash receipts).

Content type and size are checked on the incoming upload before a single
byte reaches ``UPLOAD_DIR``; stored names are random so clients cannot
overwrite each other's files.
"""
import logging
import secrets
import time
from pathlib import Path

from fastapi import UploadFile

from vbs.config import settings
from vbs.exceptions import BadRequestError, NotFoundError

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


def upload_dir() -> Path:
    return Path(settings.UPLOAD_DIR).resolve()


def _stored_name(original: str | None) -> str:
    suffix = Path(original or "").suffix.lower()
    if not suffix.isascii() or not suffix[1:].isalnum() or len(suffix) > 10:
        suffix = ""
    return f"{int(time.time() * 1000)}-{secrets.token_hex(8)}{suffix}"


async def save_image(file: UploadFile) -> dict:
    """Validate and store an uploaded image; return its name and public URL."""
    if not file.content_type or not file.content_type.startswith("image/"):
        raise BadRequestError("Only images are allowed")

    limit = settings.max_upload_size_bytes
    chunks: list[bytes] = []
    size = 0
    while chunk := await file.read(_CHUNK_SIZE):
        size += len(chunk)
        if size > limit:
            raise BadRequestError(f"File exceeds {settings.MAX_UPLOAD_SIZE_MB} MB")
        chunks.append(chunk)
    if size == 0:
        raise BadRequestError("Empty file")

    target_dir = upload_dir()
    target_dir.mkdir(parents=True, exist_ok=True)
    filename = _stored_name(file.filename)
    (target_dir / filename).write_bytes(b"".join(chunks))

    logger.info("Stored upload %s (%d bytes, %s)", filename, size, file.content_type)
    return {"filename": filename, "url": f"/api/v1/files/{filename}"}


def resolve(filename: str) -> Path:
    """Path of a stored file; NotFoundError when missing or outside UPLOAD_DIR."""
    base = upload_dir()
    path = (base / filename).resolve()
    if path.parent != base or not path.is_file():
        raise NotFoundError("File", filename)
    return path
