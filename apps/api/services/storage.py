"""S3 object storage helpers for account-scoped asset uploads."""

from __future__ import annotations

import asyncio
import logging
import os
import re
import shutil
import tempfile
import uuid
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import AsyncIterator, Optional, Tuple

import boto3
from botocore.config import Config

from config import settings

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_s3_client():
    """Build the shared S3 client from configured credentials."""
    kwargs = {
        "region_name": settings.AWS_REGION,
        "config": Config(signature_version="s3v4"),
    }
    if settings.AWS_ACCESS_KEY_ID and settings.AWS_SECRET_ACCESS_KEY:
        kwargs["aws_access_key_id"] = settings.AWS_ACCESS_KEY_ID
        kwargs["aws_secret_access_key"] = settings.AWS_SECRET_ACCESS_KEY
    return boto3.client("s3", **kwargs)


def file_extension(file_name: str) -> str:
    """Return the lowercase extension of ``file_name`` without the dot."""
    _, ext = os.path.splitext(str(file_name or ""))
    return ext.lstrip(".").lower()


def build_upload_key(account_id: str, file_name: str) -> str:
    """Build a collision-free upload key inside the account namespace."""
    ext = file_extension(file_name) or "bin"
    return f"accounts/{account_id}/uploads/{uuid.uuid4()}.{ext}"


def build_content_key(account_id: str, title: str) -> str:
    """Key for markdown written server-side, named after the title."""
    slug = re.sub(r"[^a-z0-9]+", "-", str(title or "").lower()).strip("-")[:50] or "content"
    return f"accounts/{account_id}/content/{slug}-{uuid.uuid4().hex[:8]}.md"


def account_prefix(account_id: str) -> str:
    return f"accounts/{account_id}/"


def get_object_url(key: str) -> str:
    """Public-style URL for a stored object (not signed)."""
    return f"https://{settings.AWS_S3_BUCKET_NAME}.s3.{settings.AWS_REGION}.amazonaws.com/{key}"


def get_presigned_upload_url(key: str, content_type: str, ttl: Optional[int] = None) -> str:
    """Signed PUT URL the browser uploads the file to directly."""
    return get_s3_client().generate_presigned_url(
        "put_object",
        Params={
            "Bucket": settings.AWS_S3_BUCKET_NAME,
            "Key": key,
            "ContentType": content_type,
        },
        ExpiresIn=int(ttl or settings.PRESIGNED_URL_TTL_SECONDS),
    )


def get_presigned_download_url(key: str, ttl: Optional[int] = None) -> str:
    """Signed GET URL for a stored object."""
    return get_s3_client().generate_presigned_url(
        "get_object",
        Params={"Bucket": settings.AWS_S3_BUCKET_NAME, "Key": key},
        ExpiresIn=int(ttl or settings.PRESIGNED_URL_TTL_SECONDS),
    )


def put_object(key: str, body: bytes, content_type: str) -> None:
    get_s3_client().put_object(
        Bucket=settings.AWS_S3_BUCKET_NAME,
        Key=key,
        Body=body,
        ContentType=content_type,
    )
    logger.info("Stored object %s (%s bytes)", key, len(body))


def delete_object(key: str) -> None:
    get_s3_client().delete_object(Bucket=settings.AWS_S3_BUCKET_NAME, Key=key)
    logger.info("Deleted storage object %s", key)


def download_object(key: str) -> bytes:
    """Read a stored object fully into memory."""
    response = get_s3_client().get_object(Bucket=settings.AWS_S3_BUCKET_NAME, Key=key)
    body = response["Body"]
    try:
        return body.read()
    finally:
        body.close()


def download_object_to_path(key: str, output_path: str) -> str:
    """Stream a stored object to a local file and return its path."""
    os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)
    get_s3_client().download_file(settings.AWS_S3_BUCKET_NAME, key, output_path)
    return output_path


async def download_object_async(key: str) -> bytes:
    return await asyncio.to_thread(download_object, key)


async def put_object_async(key: str, body: bytes, content_type: str) -> None:
    await asyncio.to_thread(put_object, key, body, content_type)


async def delete_object_async(key: str) -> None:
    await asyncio.to_thread(delete_object, key)


@asynccontextmanager
async def staged_download(key: str) -> AsyncIterator[Tuple[str, str]]:
    """Download an object into a scratch directory that is removed afterwards.

    Yields (local file path, scratch directory).
    """
    os.makedirs(settings.MEDIA_WORK_DIR, exist_ok=True)
    work_dir = tempfile.mkdtemp(dir=settings.MEDIA_WORK_DIR)
    try:
        ext = file_extension(key)
        local_path = os.path.join(work_dir, f"source.{ext}" if ext else "source")
        await asyncio.to_thread(download_object_to_path, key, local_path)
        yield local_path, work_dir
    finally:
        shutil.rmtree(work_dir, ignore_errors=True)
