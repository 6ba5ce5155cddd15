import asyncio
import threading
import uuid

import boto3
import structlog
from fastapi import UploadFile

from app.config import settings

logger = structlog.get_logger()

# Maximum file size: 5 MB
MAX_FILE_SIZE = 5 * 1024 * 1024
CHUNK_SIZE = 64 * 1024
ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/png", "application/pdf"}
# Whitelist of upload folders, keys are never built from user input
ALLOWED_UPLOAD_FOLDERS = {"documents"}

MOCK_STORAGE_URL = "https://storage.fundipluss.dev"

MAGIC_BYTES = {
    "image/jpeg": [b"\xff\xd8\xff"],
    "image/png": [b"\x89PNG"],
    "application/pdf": [b"%PDF"],
}
_EXTENSIONS = {"image/jpeg": "jpg", "image/png": "png", "application/pdf": "pdf"}


def _validate_magic_bytes(content: bytes, content_type: str) -> bool:
    """Check that the file content starts with a signature of the declared type."""
    return any(content.startswith(sig) for sig in MAGIC_BYTES.get(content_type, []))


_s3_client = None
_s3_lock = threading.Lock()


def get_s3_client():
    """Get or create a cached S3-compatible client for R2/S3.

    The boto3 low-level client is safe for concurrent use once created,
    so only creation is locked.
    """
    global _s3_client
    if _s3_client is None:
        with _s3_lock:
            if _s3_client is None:
                kwargs = {
                    "service_name": "s3",
                    "aws_access_key_id": settings.R2_ACCESS_KEY_ID,
                    "aws_secret_access_key": settings.R2_SECRET_ACCESS_KEY,
                }
                if settings.R2_ENDPOINT_URL:
                    kwargs["endpoint_url"] = settings.R2_ENDPOINT_URL
                _s3_client = boto3.client(**kwargs)
    return _s3_client


async def _read_limited(file: UploadFile) -> bytes:
    # Reject on the declared size before buffering anything
    if file.size is not None and file.size > MAX_FILE_SIZE:
        raise ValueError(f"File too large. Maximum size is {MAX_FILE_SIZE // (1024 * 1024)} MB.")

    content = bytearray()
    while True:
        chunk = await file.read(CHUNK_SIZE)
        if not chunk:
            break
        content.extend(chunk)
        if len(content) > MAX_FILE_SIZE:
            raise ValueError(f"File too large. Maximum size is {MAX_FILE_SIZE // (1024 * 1024)} MB.")
    return bytes(content)


async def upload_file(file: UploadFile, folder: str = "documents") -> str:
    """Upload a professional's supporting document and return its URL.

    Without R2 configured (development, tests) nothing is uploaded and a
    mock URL under MOCK_STORAGE_URL is returned.

    Raises:
        ValueError: If the folder, file type, size or content is invalid.
    """
    if folder not in ALLOWED_UPLOAD_FOLDERS:
        raise ValueError(f"Upload folder '{folder}' is not allowed.")

    if file.content_type not in ALLOWED_CONTENT_TYPES:
        raise ValueError(f"File type {file.content_type} not allowed. Use JPEG, PNG or PDF.")

    content = await _read_limited(file)

    if not _validate_magic_bytes(content, file.content_type):
        raise ValueError(
            f"File content does not match declared type {file.content_type}. "
            "The file may be corrupted or mislabeled."
        )

    key = f"{folder}/{uuid.uuid4()}.{_EXTENSIONS[file.content_type]}"

    if not settings.R2_ENDPOINT_URL:
        mock_url = f"{MOCK_STORAGE_URL}/{key}"
        logger.info("file_upload_mock", key=key, url=mock_url)
        return mock_url

    client = get_s3_client()
    await asyncio.to_thread(
        client.put_object,
        Bucket=settings.R2_BUCKET_NAME,
        Key=key,
        Body=content,
        ContentType=file.content_type,
    )

    url = f"{settings.R2_PUBLIC_URL}/{key}"
    logger.info("file_uploaded", key=key, url=url)
    return url


def get_key_from_url(url: str) -> str | None:
    """Extract the object key from a public R2 URL or a development mock URL."""
    if not url:
        return None
    for prefix in (settings.R2_PUBLIC_URL, MOCK_STORAGE_URL):
        if prefix and url.startswith(f"{prefix}/"):
            return url[len(prefix) + 1:]
    return None


async def generate_presigned_url(key: str, expires_in: int = 900) -> str:
    """Generate a time-limited pre-signed URL for a stored document.

    Identity documents are personal data, so admins and directory viewers
    get short-lived links instead of the permanent public URL.
    """
    if not settings.R2_ENDPOINT_URL:
        return f"{MOCK_STORAGE_URL}/{key}?presigned=mock&expires={expires_in}"

    client = get_s3_client()
    url = await asyncio.to_thread(
        client.generate_presigned_url,
        "get_object",
        Params={"Bucket": settings.R2_BUCKET_NAME, "Key": key},
        ExpiresIn=expires_in,
    )
    logger.info("presigned_url_generated", key=key, expires_in=expires_in)
    return url


async def get_document_url(url: str | None, expires_in: int = 900) -> str | None:
    if not url:
        return None
    key = get_key_from_url(url)
    if not key:
        return url
    return await generate_presigned_url(key, expires_in)


async def delete_file(url: str) -> None:
    """Delete a stored document. Failures are logged, not raised."""
    key = get_key_from_url(url)
    if not key or not settings.R2_ENDPOINT_URL:
        return
    try:
        client = get_s3_client()
        await asyncio.to_thread(client.delete_object, Bucket=settings.R2_BUCKET_NAME, Key=key)
        logger.info("file_deleted", key=key)
    except Exception:
        logger.exception("file_delete_failed", key=key)
