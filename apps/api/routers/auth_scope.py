"""Authentication dependencies for API account scoping."""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from database import get_db
from models.account import AccountMember, MemberRole
from services.session_token import decode_session_token


auth_scheme = HTTPBearer(auto_error=False)

NO_ACCOUNT_MESSAGE = "No account selected. Please select an account first."


@dataclass
class AuthContext:
    user_id: str
    email: Optional[str] = None
    account_id: Optional[str] = None
    role: Optional[str] = None

    @property
    def is_manager(self) -> bool:
        return self.role in MemberRole.MANAGERS


async def get_auth_context(
    credentials: HTTPAuthorizationCredentials = Depends(auth_scheme),
) -> AuthContext:
    """Resolve authenticated user from Bearer session token."""
    if not credentials or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="Missing Bearer session token.")

    try:
        claims = decode_session_token(credentials.credentials)
    except ValueError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc

    return AuthContext(user_id=claims.user_id, email=claims.email, account_id=claims.account_id)


async def get_account_context(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
) -> AuthContext:
    """Require an active account on the session and a membership in it."""
    if not auth.account_id:
        raise HTTPException(status_code=400, detail=NO_ACCOUNT_MESSAGE)
    result = await db.execute(
        select(AccountMember).where(
            AccountMember.account_id == auth.account_id,
            AccountMember.user_id == auth.user_id,
        )
    )
    membership = result.scalar_one_or_none()
    if membership is None:
        raise HTTPException(status_code=403, detail="You are not a member of this account.")
    auth.role = membership.role
    return auth


async def require_account_manager(auth: AuthContext = Depends(get_account_context)) -> AuthContext:
    """Require OWNER or ADMIN role in the active account."""
    if not auth.is_manager:
        raise HTTPException(status_code=403, detail="Insufficient role for this action.")
    return auth
