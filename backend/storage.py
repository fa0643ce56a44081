"""
Image storage for workspace and project avatars.

Uploaded images are stored as files under ``UPLOAD_DIR/<bucket>/<file_id>``
and embedded into documents as base64 data URLs
(``data:image/png;base64,...``). Documents written by earlier versions use
the same prefix, so readers must keep accepting it.
"""

import base64
import logging
import uuid
from pathlib import Path
from typing import Dict, Optional

from fastapi import HTTPException, UploadFile

from config import MAX_IMAGE_SIZE, UPLOAD_DIR

logger = logging.getLogger(__name__)

IMAGES_BUCKET = "images"
DATA_URL_PREFIX = "data:image/png;base64,"

ALLOWED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".webp"}  # .svg excluded for XSS security
ALLOWED_MIME_TYPES = {"image/png", "image/jpeg", "image/gif", "image/webp"}

CHUNK_SIZE = 64 * 1024


class ImageStorage:
    """File-system storage provider addressed by (bucket, file id)."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def _path(self, bucket: str, file_id: str) -> Path:
        # Ids are generated server-side; reject anything that could escape the bucket
        if not file_id or "/" in file_id or "\\" in file_id or file_id.startswith("."):
            raise ValueError(f"Invalid file id: {file_id!r}")
        return self.root / bucket / file_id

    def store(self, bucket: str, data: bytes, file_id: Optional[str] = None) -> str:
        file_id = file_id or uuid.uuid4().hex
        path = self._path(bucket, file_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.debug(f"Stored {len(data)} bytes as {bucket}/{file_id}")
        return file_id

    def fetch_bytes(self, bucket: str, file_id: str) -> bytes:
        return self._path(bucket, file_id).read_bytes()

    def delete(self, bucket: str, file_id: str) -> None:
        path = self._path(bucket, file_id)
        if path.exists():
            path.unlink()


def get_image_storage() -> ImageStorage:
    """FastAPI dependency returning the configured storage provider."""
    return ImageStorage(UPLOAD_DIR)


def to_data_url(data: bytes) -> str:
    return DATA_URL_PREFIX + base64.b64encode(data).decode("ascii")


def validate_image_upload(file: UploadFile) -> None:
    """Validate file extension and MIME type."""
    file_ext = Path(file.filename or "").suffix.lower()
    if file_ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(
            status_code=400,
            detail=f"File type not allowed. Allowed extensions: {', '.join(sorted(ALLOWED_EXTENSIONS))}",
        )

    # Many clients send octet-stream for binary files, so we trust the extension
    if file.content_type not in ALLOWED_MIME_TYPES and file.content_type != "application/octet-stream":
        raise HTTPException(
            status_code=400,
            detail=f"MIME type not allowed: {file.content_type}",
        )


async def read_image_upload(file: UploadFile, max_size: int = MAX_IMAGE_SIZE) -> bytes:
    """
    Read an uploaded image in chunks, validating size incrementally.

    Aborts as soon as ``max_size`` is exceeded, so a huge upload never sits
    in memory.
    """
    validate_image_upload(file)

    chunks = []
    total_size = 0
    while True:
        chunk = await file.read(CHUNK_SIZE)
        if not chunk:
            break
        total_size += len(chunk)
        if total_size > max_size:
            raise HTTPException(
                status_code=413,  # Payload Too Large
                detail=f"Image too large. Maximum size: {max_size / (1024 * 1024):.1f}MB",
            )
        chunks.append(chunk)

    if total_size == 0:
        raise HTTPException(status_code=400, detail="Uploaded image is empty")
    return b"".join(chunks)


async def upload_image(storage: ImageStorage, file: UploadFile) -> str:
    """Store an uploaded image and return it as a data URL read back from storage."""
    data = await read_image_upload(file)
    file_id = storage.store(IMAGES_BUCKET, data)
    image_url = to_data_url(storage.fetch_bytes(IMAGES_BUCKET, file_id))
    logger.info(f"Image {file.filename} stored as {IMAGES_BUCKET}/{file_id} ({len(data)} bytes)")
    return image_url


async def image_changes(
    storage: ImageStorage,
    image: Optional[UploadFile],
    image_url,
) -> Dict[str, Optional[str]]:
    """
    Translate the image fields of an update form into document changes.

    A new file wins over ``imageUrl``. An empty ``imageUrl`` clears the
    image, an existing data URL is kept as sent, and when neither field is
    present the image is left untouched.
    """
    if image is not None and image.filename:
        return {"image_url": await upload_image(storage, image)}
    if image_url is None:
        return {}
    if image_url == "":
        return {"image_url": None}
    if not isinstance(image_url, str) or not image_url.startswith(DATA_URL_PREFIX):
        raise HTTPException(status_code=400, detail="imageUrl must be a PNG data URL")
    return {"image_url": image_url}
