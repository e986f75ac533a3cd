"""Image uploads for book covers and store pictures."""

import io
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from PIL import Image, UnidentifiedImageError

from .. import models, schemas, services
from ..auth import require_seller
from ..config import settings
from ..dependencies import get_storage_client
from ..utils.storage import StorageClient

logger = logging.getLogger("routes.uploads")

router = APIRouter(prefix="/uploads", tags=["Uploads"])

IMAGE_CONTENT_TYPES = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "GIF": "image/gif",
    "WEBP": "image/webp",
}


def _validate_upload_filename(filename: Optional[str]) -> str:
    if not filename or len(filename) > 200:
        raise HTTPException(status_code=400, detail="invalid filename")
    if "/" in filename or "\\" in filename or filename.startswith("."):
        raise HTTPException(status_code=400, detail="invalid filename path")
    return filename


def _sniff_image(payload: bytes) -> str:
    """Return the content type of a supported image, else 415."""
    try:
        with Image.open(io.BytesIO(payload)) as img:
            kind = img.format
            img.verify()
    except Image.DecompressionBombError:
        raise HTTPException(status_code=413, detail="image dimensions too large")
    except (UnidentifiedImageError, OSError, SyntaxError):
        raise HTTPException(status_code=415, detail="unsupported file content; expected an image")
    if kind not in IMAGE_CONTENT_TYPES:
        raise HTTPException(status_code=415, detail=f"unsupported image format {kind}")
    return IMAGE_CONTENT_TYPES[kind]


@router.post("/images", status_code=201, response_model=schemas.UploadOut)
def upload_image(
    file: UploadFile = File(...),
    folder: str = Form("books"),
    user: models.User = Depends(require_seller),
    storage: StorageClient = Depends(get_storage_client),
):
    filename = _validate_upload_filename(file.filename)
    payload = file.file.read(settings.MAX_UPLOAD_BYTES + 1)
    if not payload:
        raise HTTPException(status_code=400, detail="empty file")
    if len(payload) > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail=f"file too large; max {settings.MAX_UPLOAD_BYTES} bytes")
    content_type = _sniff_image(payload)
    stored = services.UploadService(storage).store_image(folder, filename, payload, content_type)
    logger.info("upload_done user_id=%s path=%s", user.id, stored["path"])
    return schemas.UploadOut(**stored)
