"""Presigned upload URL router."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from database import get_db
from models.account import Account
from routers.auth_scope import AuthContext, get_account_context
from routers.rate_limit import rate_limit
from services.storage import build_upload_key, file_extension, get_presigned_upload_url

router = APIRouter()

ALLOWED_FILE_TYPES = {
    # Documents
    "application/pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/msword",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "text/csv",
    "text/plain",
    # Images
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "image/svg+xml",
    # Video
    "video/mp4",
    "video/quicktime",
    "video/x-msvideo",
    "video/webm",
    "video/mpeg",
    "video/x-m4v",
    # Audio
    "audio/mpeg",
    "audio/mp4",
    "audio/wav",
    "audio/ogg",
    "audio/flac",
}

ALLOWED_EXTENSIONS = {
    "pdf", "doc", "docx", "xls", "xlsx", "csv", "txt",
    "jpg", "jpeg", "png", "gif", "webp", "svg",
    "mp4", "mov", "avi", "webm", "mpeg", "mpg", "m4v",
    "mp3", "m4a", "wav", "ogg", "flac",
}


class PresignedUploadRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    file_name: str = Field(min_length=1, max_length=255)
    file_type: str
    file_size: Optional[int] = Field(default=None, ge=0)

    @field_validator("file_name")
    @classmethod
    def _allowed_extension(cls, value: str) -> str:
        if file_extension(value) not in ALLOWED_EXTENSIONS:
            raise ValueError("File type not allowed")
        return value

    @field_validator("file_type")
    @classmethod
    def _allowed_type(cls, value: str) -> str:
        if value not in ALLOWED_FILE_TYPES:
            raise ValueError("File type not allowed")
        return value


class PresignedUploadResponse(BaseModel):
    url: str
    key: str


@router.post("/presigned", response_model=PresignedUploadResponse)
async def create_presigned_upload(
    request: PresignedUploadRequest,
    _rate_limit: None = Depends(rate_limit("upload_presigned", limit=120, window_seconds=3600)),
    auth: AuthContext = Depends(get_account_context),
    db: AsyncSession = Depends(get_db),
):
    """Issue a signed PUT URL under the caller's account namespace."""
    result = await db.execute(select(Account).where(Account.id == auth.account_id))
    account = result.scalar_one_or_none()
    max_size = int((account.max_file_size_bytes if account else None) or settings.DEFAULT_MAX_FILE_SIZE_BYTES)
    if request.file_size is not None and request.file_size > max_size:
        raise HTTPException(
            status_code=400,
            detail=f"File too large. Maximum size is {max_size // (1024 * 1024)}MB.",
        )

    key = build_upload_key(auth.account_id, request.file_name)
    url = get_presigned_upload_url(key, request.file_type, settings.PRESIGNED_URL_TTL_SECONDS)
    return PresignedUploadResponse(url=url, key=key)
