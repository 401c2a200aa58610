"""One-time login codes for passwordless sign-in."""

from __future__ import annotations

import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from models.account import Account, AccountMember, MemberRole
from models.login_code import LoginCode
from models.user import User

MAX_VERIFY_ATTEMPTS = 5


def normalize_email(email: str) -> str:
    return str(email or "").strip().lower()


def _hash_code(email: str, code: str) -> str:
    return hashlib.sha256(f"{normalize_email(email)}:{code}".encode("utf-8")).hexdigest()


def generate_code() -> str:
    return f"{secrets.randbelow(1_000_000):06d}"


async def issue_login_code(db: AsyncSession, email: str) -> str:
    """Replace any outstanding codes for ``email`` with a fresh one and return it."""
    normalized = normalize_email(email)
    code = generate_code()
    await db.execute(delete(LoginCode).where(LoginCode.email == normalized))
    db.add(
        LoginCode(
            email=normalized,
            code_hash=_hash_code(normalized, code),
            expires_at=datetime.now(timezone.utc) + timedelta(minutes=settings.LOGIN_CODE_TTL_MINUTES),
            attempts=0,
        )
    )
    await db.commit()
    return code


def _as_aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


async def verify_login_code(db: AsyncSession, email: str, code: str) -> bool:
    """Check a code; consumes it on success and counts failed attempts."""
    normalized = normalize_email(email)
    result = await db.execute(
        select(LoginCode).where(LoginCode.email == normalized).order_by(LoginCode.created_at.desc())
    )
    record = result.scalars().first()
    if record is None:
        return False
    if _as_aware(record.expires_at) <= datetime.now(timezone.utc) or record.attempts >= MAX_VERIFY_ATTEMPTS:
        await db.delete(record)
        await db.commit()
        return False
    if not hmac.compare_digest(record.code_hash, _hash_code(normalized, str(code or "").strip())):
        record.attempts = int(record.attempts or 0) + 1
        await db.commit()
        return False
    await db.delete(record)
    await db.commit()
    return True


async def get_or_create_user(db: AsyncSession, email: str) -> Tuple[User, Optional[str]]:
    """
    Return the user for ``email`` and the account id to scope the session to.

    First sign-in creates the user plus a personal account they own.
    """
    normalized = normalize_email(email)
    result = await db.execute(select(User).where(User.email == normalized))
    user = result.scalar_one_or_none()
    if user is None:
        user = User(email=normalized, name=normalized.split("@")[0])
        db.add(user)
        await db.flush()
        account = Account(name=f"{user.name}'s workspace", max_file_size_bytes=settings.DEFAULT_MAX_FILE_SIZE_BYTES)
        db.add(account)
        await db.flush()
        db.add(AccountMember(account_id=account.id, user_id=user.id, role=MemberRole.OWNER))
        user.last_account_id = account.id
        await db.commit()
        await db.refresh(user)
        return user, account.id

    if user.last_account_id:
        membership = await db.execute(
            select(AccountMember).where(
                AccountMember.user_id == user.id,
                AccountMember.account_id == user.last_account_id,
            )
        )
        if membership.scalar_one_or_none():
            return user, user.last_account_id

    first = await db.execute(
        select(AccountMember).where(AccountMember.user_id == user.id).order_by(AccountMember.created_at.asc())
    )
    member = first.scalars().first()
    return user, member.account_id if member else None
