"""Media host client: profile images go to S3-compatible storage and are referenced by public URL."""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import UploadFile

from app.config import settings
from app.core.errors import UploadError, ValidationError

logger = logging.getLogger(__name__)

# Background work still running after its request gave up.
_pending: set[asyncio.Future] = set()

_CONTENT_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
}


@dataclass(frozen=True)
class MediaAsset:
    url: str
    key: str


def get_s3_client():
    return boto3.client(
        "s3",
        endpoint_url=settings.s3_endpoint_url,
        aws_access_key_id=settings.s3_access_key,
        aws_secret_access_key=settings.s3_secret_key,
        config=Config(
            signature_version="s3v4",
            connect_timeout=settings.media_upload_timeout_seconds,
            read_timeout=settings.media_upload_timeout_seconds,
            retries={"max_attempts": 2},
        ),
    )


def public_url(key: str) -> str:
    base = settings.media_public_base_url.strip() or f"{settings.s3_endpoint_url.rstrip('/')}/{settings.s3_bucket}"
    return f"{base.rstrip('/')}/{key}"


def _ensure_bucket_exists(client) -> None:
    try:
        client.head_bucket(Bucket=settings.s3_bucket)
    except ClientError:
        client.create_bucket(Bucket=settings.s3_bucket)


async def upload(local_path: Path | str) -> MediaAsset:
    """Upload a local file and return its public URL. The local file is removed either way."""
    path = Path(local_path)
    suffix = path.suffix.lower()
    key = f"users/{uuid.uuid4().hex}{suffix}"

    def _upload() -> None:
        client = get_s3_client()
        _ensure_bucket_exists(client)
        client.upload_file(
            str(path),
            settings.s3_bucket,
            key,
            ExtraArgs={"ContentType": _CONTENT_TYPES.get(suffix, "application/octet-stream")},
        )

    task = asyncio.ensure_future(asyncio.to_thread(_upload))
    try:
        await asyncio.wait_for(asyncio.shield(task), timeout=settings.media_upload_timeout_seconds)
    except asyncio.TimeoutError as e:
        # The worker thread cannot be interrupted; remove the object if it lands after all.
        logger.warning(
            "Media upload of %s timed out after %ss", key, settings.media_upload_timeout_seconds
        )
        _track(task)
        task.add_done_callback(lambda t: _delete_late_upload(t, key))
        raise UploadError("Media upload timed out") from e
    except (BotoCoreError, ClientError, OSError) as e:
        logger.exception("Media upload failed for %s", path.name)
        raise UploadError() from e
    finally:
        path.unlink(missing_ok=True)
    return MediaAsset(url=public_url(key), key=key)


async def delete(key: str) -> None:
    """Remove an uploaded object. Failures are logged, not raised."""

    def _delete() -> None:
        get_s3_client().delete_object(Bucket=settings.s3_bucket, Key=key)

    try:
        await asyncio.wait_for(asyncio.to_thread(_delete), timeout=settings.media_upload_timeout_seconds)
    except (asyncio.TimeoutError, BotoCoreError, ClientError) as e:
        logger.warning("Could not remove media object %s: %s", key, e)
    else:
        logger.info("Removed media object %s", key)


def _track(task: asyncio.Future) -> None:
    _pending.add(task)
    task.add_done_callback(_pending.discard)


def _delete_late_upload(task: asyncio.Future, key: str) -> None:
    if task.cancelled() or task.exception() is not None:
        return
    logger.warning("Timed-out upload %s completed late; removing it", key)
    _track(asyncio.ensure_future(delete(key)))


def _validate_image(content_type: str | None, head: bytes) -> None:
    if not content_type or not content_type.startswith("image/"):
        raise ValidationError("File must be an image")
    if not (
        head.startswith(b"\xff\xd8\xff")
        or head.startswith(b"\x89PNG\r\n\x1a\n")
        or head.startswith(b"GIF87a")
        or head.startswith(b"GIF89a")
        or (head[:4] == b"RIFF" and head[8:12] == b"WEBP")
    ):
        raise ValidationError("File must be a valid image (JPEG, PNG, GIF or WebP).")


@asynccontextmanager
async def staged(file: UploadFile | None) -> AsyncIterator[Path | None]:
    """Write a multipart upload to the temp dir and yield its path; None when no file was sent."""
    if file is None or not file.filename:
        yield None
        return
    data = await file.read()
    if not data:
        yield None
        return
    if len(data) > settings.max_upload_bytes:
        raise ValidationError(f"Image too large (max {settings.max_upload_bytes // (1024 * 1024)}MB)")
    _validate_image(file.content_type, data[:12])
    temp_dir = Path(settings.upload_temp_dir)
    temp_dir.mkdir(parents=True, exist_ok=True)
    path = temp_dir / f"{uuid.uuid4().hex}{Path(file.filename).suffix.lower()}"
    await asyncio.to_thread(path.write_bytes, data)
    try:
        yield path
    finally:
        path.unlink(missing_ok=True)
