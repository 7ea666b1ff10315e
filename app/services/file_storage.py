"""
File Storage Service

Stores report photos submitted as base64 ``data:`` URLs and returns a public
URL for them. Backends:
- Local filesystem storage for development (served under ``/uploads``)
- S3 compatible storage for production
"""

import asyncio
import base64
import binascii
import re
import time
from io import BytesIO
from pathlib import Path
from typing import Tuple

import aiofiles
import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError
from PIL import Image, UnidentifiedImageError

from app.core.config import settings
from app.core.exceptions import (
    FileSizeExceededError,
    FileUploadError,
    UnsupportedFileTypeError,
    ValidationError,
)

# =============================================================================
# Logger Setup
# =============================================================================

logger = structlog.get_logger(__name__)

DATA_URL_PATTERN = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>.+)$", re.DOTALL)

MIME_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
}


def parse_data_url(data_url: str) -> Tuple[bytes, str, str]:
    """
    Split a base64 data URL into bytes, MIME type and file extension.

    Raises:
        ValidationError: If the string is not a base64 data URL
    """
    match = DATA_URL_PATTERN.match(data_url.strip())
    if not match:
        raise ValidationError("Invalid image data URL", field="imageDataUrl")

    content_type = match.group("mime").lower()
    try:
        payload = base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Image data is not valid base64", field="imageDataUrl")

    return payload, content_type, MIME_EXTENSIONS.get(content_type, "bin")


# =============================================================================
# File Storage Backend Classes
# =============================================================================

class FileStorageBackend:
    """Base class for file storage backends."""

    async def upload_file(self, file_data: bytes, key: str, content_type: str) -> str:
        """Store bytes under ``key`` and return the public URL."""
        raise NotImplementedError


class LocalFileStorage(FileStorageBackend):
    """Local filesystem storage backend."""

    def __init__(self, base_path: Path, public_base_url: str):
        self.base_path = Path(base_path)
        self.public_base_url = public_base_url.rstrip("/")

    async def upload_file(self, file_data: bytes, key: str, content_type: str) -> str:
        full_path = self.base_path / key
        try:
            full_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(full_path, "wb") as f:
                await f.write(file_data)
        except OSError as e:
            logger.error("Local file upload failed", key=key, error=str(e))
            raise FileUploadError(f"Failed to store file: {e}", file_name=key, file_size=len(file_data))

        logger.debug("File uploaded to local storage", key=key, size=len(file_data))
        return f"{self.public_base_url}/uploads/{key}"


class S3FileStorage(FileStorageBackend):
    """S3-compatible storage backend."""

    def __init__(self):
        self.bucket_name = settings.S3_BUCKET_NAME
        self.client = boto3.client(
            "s3",
            endpoint_url=settings.S3_ENDPOINT_URL,
            aws_access_key_id=settings.S3_ACCESS_KEY_ID,
            aws_secret_access_key=settings.S3_SECRET_ACCESS_KEY,
            region_name=settings.S3_REGION,
        )
        public_base = settings.S3_PUBLIC_URL or f"{settings.S3_ENDPOINT_URL.rstrip('/')}/{self.bucket_name}"
        self.public_base_url = public_base.rstrip("/")

    async def upload_file(self, file_data: bytes, key: str, content_type: str) -> str:
        try:
            await asyncio.to_thread(
                self.client.put_object,
                Bucket=self.bucket_name,
                Key=key,
                Body=file_data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error("S3 upload failed", key=key, error=str(e))
            raise FileUploadError(f"Failed to upload file to S3: {e}", file_name=key, file_size=len(file_data))

        logger.debug("File uploaded to S3", key=key, size=len(file_data))
        return f"{self.public_base_url}/{key}"


# =============================================================================
# Service
# =============================================================================

class FileStorageService:
    """Validates report photos and hands them to the configured backend."""

    def __init__(self, backend: FileStorageBackend = None):
        if backend is not None:
            self.backend = backend
        elif settings.STORAGE_BACKEND == "local":
            self.backend = LocalFileStorage(settings.UPLOAD_DIR, settings.PUBLIC_BASE_URL)
        elif settings.STORAGE_BACKEND == "s3":
            self.backend = S3FileStorage()
        else:
            raise ValueError(f"Unsupported storage backend: {settings.STORAGE_BACKEND}")

    def validate_image(self, file_data: bytes, content_type: str) -> None:
        """
        Check type, size and that the bytes really decode as an image.

        Raises:
            UnsupportedFileTypeError, FileSizeExceededError, ValidationError
        """
        if content_type not in settings.ALLOWED_FILE_TYPES:
            raise UnsupportedFileTypeError(content_type, settings.ALLOWED_FILE_TYPES)

        max_size = settings.MAX_FILE_SIZE_MB * 1024 * 1024
        if len(file_data) > max_size:
            raise FileSizeExceededError(len(file_data), max_size)

        try:
            with Image.open(BytesIO(file_data)) as image:
                image.verify()
        except (UnidentifiedImageError, OSError, SyntaxError) as e:
            raise ValidationError(f"Invalid image file: {e}", field="imageDataUrl")

    async def upload_data_url(self, data_url: str, user_id: str) -> str:
        """
        Store a report photo for ``user_id``.

        Returns:
            Public URL of the stored image
        """
        file_data, content_type, extension = parse_data_url(data_url)
        self.validate_image(file_data, content_type)

        key = f"{user_id}/{int(time.time() * 1000)}.{extension}"
        url = await self.backend.upload_file(file_data, key, content_type)

        logger.info(
            "Report image uploaded",
            user_id=user_id,
            size=len(file_data),
            backend=type(self.backend).__name__,
        )
        return url


__all__ = [
    "FileStorageService",
    "FileStorageBackend",
    "LocalFileStorage",
    "S3FileStorage",
    "parse_data_url",
]
