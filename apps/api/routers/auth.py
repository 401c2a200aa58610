"""
Authentication router for passwordless email sign-in and account switching.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from database import get_db
from models.account import Account, AccountMember
from models.user import User
from routers.auth_scope import AuthContext, get_auth_context
from routers.rate_limit import enforce_quota, get_ephemeral_store, rate_limit
from services.email_delivery import EmailDeliveryError, send_login_code_email
from services.login_code import get_or_create_user, issue_login_code, normalize_email, verify_login_code
from services.session_token import create_session_token

router = APIRouter()


class SendCodeRequest(BaseModel):
    email: EmailStr


class VerifyCodeRequest(BaseModel):
    email: EmailStr
    code: str = Field(min_length=6, max_length=6, pattern=r"^\d{6}$")


class SwitchAccountRequest(BaseModel):
    account_id: str = Field(min_length=1)


class MembershipResponse(BaseModel):
    account_id: str
    account_name: str
    role: str


class CurrentUserResponse(BaseModel):
    user_id: str
    email: str
    name: Optional[str] = None
    account_id: Optional[str] = None
    memberships: List[MembershipResponse] = []


class SessionResponse(BaseModel):
    token: str
    expires_at: int
    user_id: str
    email: str
    account_id: Optional[str] = None


async def _memberships(db: AsyncSession, user_id: str) -> List[MembershipResponse]:
    result = await db.execute(
        select(AccountMember, Account)
        .join(Account, Account.id == AccountMember.account_id)
        .where(AccountMember.user_id == user_id)
        .order_by(Account.name.asc())
    )
    return [
        MembershipResponse(account_id=account.id, account_name=account.name, role=member.role)
        for member, account in result.all()
    ]


@router.post("/send-code")
async def send_code(
    request: SendCodeRequest,
    http_request: Request,
    _rate_limit: None = Depends(rate_limit("auth_send_code", limit=30, window_seconds=3600)),
    db: AsyncSession = Depends(get_db),
):
    """Email a one-time sign-in code."""
    email = normalize_email(request.email)
    await enforce_quota(
        get_ephemeral_store(http_request),
        f"login_code:{email}",
        settings.LOGIN_CODE_RATE_LIMIT,
        settings.LOGIN_CODE_RATE_WINDOW_SECONDS,
        "Too many sign-in codes requested. Try again later.",
    )
    code = await issue_login_code(db, email)
    try:
        await send_login_code_email(email, code)
    except EmailDeliveryError as exc:
        raise HTTPException(status_code=502, detail="Could not send sign-in email. Try again later.") from exc
    return {"success": True, "message": "Sign-in code sent."}


@router.post("/verify-code", response_model=SessionResponse)
async def verify_code(
    request: VerifyCodeRequest,
    _rate_limit: None = Depends(rate_limit("auth_verify_code", limit=60, window_seconds=3600)),
    db: AsyncSession = Depends(get_db),
):
    """Exchange a valid sign-in code for a session token."""
    if not await verify_login_code(db, request.email, request.code):
        raise HTTPException(status_code=401, detail="Invalid or expired sign-in code.")

    user, account_id = await get_or_create_user(db, request.email)
    session = create_session_token(user.id, email=user.email, account_id=account_id)
    return SessionResponse(
        token=session["token"],
        expires_at=session["expires_at"],
        user_id=user.id,
        email=user.email,
        account_id=account_id,
    )


@router.get("/me", response_model=CurrentUserResponse)
async def get_current_user(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Get current user profile and account memberships."""
    result = await db.execute(select(User).where(User.id == auth.user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return CurrentUserResponse(
        user_id=user.id,
        email=user.email,
        name=user.name,
        account_id=auth.account_id,
        memberships=await _memberships(db, user.id),
    )


@router.post("/switch-account", response_model=SessionResponse)
async def switch_account(
    request: SwitchAccountRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Issue a session token scoped to another account the user belongs to."""
    result = await db.execute(
        select(AccountMember).where(
            AccountMember.user_id == auth.user_id,
            AccountMember.account_id == request.account_id,
        )
    )
    if result.scalar_one_or_none() is None:
        raise HTTPException(status_code=403, detail="You are not a member of this account.")

    user_result = await db.execute(select(User).where(User.id == auth.user_id))
    user = user_result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    user.last_account_id = request.account_id
    await db.commit()

    session = create_session_token(user.id, email=user.email, account_id=request.account_id)
    return SessionResponse(
        token=session["token"],
        expires_at=session["expires_at"],
        user_id=user.id,
        email=user.email,
        account_id=request.account_id,
    )


@router.post("/logout")
async def logout():
    """Stateless logout; clients discard their session token."""
    return {"success": True}
