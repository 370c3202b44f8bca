import logging
import os
import time
import uuid
from pathlib import Path
from typing import Iterable, Optional

from fastapi import UploadFile

from shared.utils import settings, ValidationException

logger = logging.getLogger("storefront")

ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}
CHUNK_SIZE = 64 * 1024


def upload_dir() -> Path:
    path = Path(settings.UPLOAD_DIR)
    path.mkdir(parents=True, exist_ok=True)
    return path


def has_file(upload: Optional[UploadFile]) -> bool:
    # Browsers post an empty part with no filename for untouched file inputs
    return upload is not None and bool(upload.filename)


def image_extension(upload: UploadFile) -> str:
    ext = os.path.splitext(upload.filename or "")[1].lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise ValidationException("Images must be JPG, PNG, GIF or WEBP files")
    return ext


async def save_upload(upload: UploadFile) -> str:
    """Store an uploaded product image and return the filename it is served under."""
    ext = image_extension(upload)
    filename = f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}{ext}"
    target = upload_dir() / filename
    written = 0
    with open(target, "wb") as out:
        while True:
            chunk = await upload.read(CHUNK_SIZE)
            if not chunk:
                break
            written += len(chunk)
            if written > settings.MAX_UPLOAD_BYTES:
                out.close()
                target.unlink(missing_ok=True)
                raise ValidationException("Image is too large")
            out.write(chunk)

    logger.info(f"Stored upload {filename} ({written} bytes)")
    return filename


def discard_uploads(filenames: Iterable[str]):
    """Remove files stored for a product write that did not go through."""
    for filename in filenames:
        (upload_dir() / filename).unlink(missing_ok=True)
        logger.info(f"Discarded upload {filename}")
