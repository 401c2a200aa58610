from unittest.mock import patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from database import Base, get_db
from main import app
from models.account import Account, AccountMember, MemberRole
from models.user import User
from services.ephemeral_store import EphemeralStore
from services.session_token import create_session_token


@pytest.fixture(autouse=True)
def isolated_ephemeral_store():
    """Keep in-memory rate-limit state isolated between tests."""
    previous_store = app.state.ephemeral_store
    previous = getattr(app.state, "disable_rate_limits", False)
    app.state.ephemeral_store = EphemeralStore(redis_url=None)
    app.state.disable_rate_limits = True
    yield app.state.ephemeral_store
    app.state.ephemeral_store = previous_store
    app.state.disable_rate_limits = previous


@pytest_asyncio.fixture
async def api_client(tmp_path):
    db_path = tmp_path / "assets.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    with (
        patch("services.asset_processor.async_session_maker", session_maker),
        patch("services.transcription.async_session_maker", session_maker),
        patch("services.job_queue.async_session_maker", session_maker),
    ):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            yield client, session_maker

    app.dependency_overrides.pop(get_db, None)
    await engine.dispose()


@pytest.fixture
def seed_member():
    """Factory creating a user with a membership; returns (user_id, account_id, auth headers)."""

    async def _seed(session_maker, email="owner@example.com", role=MemberRole.OWNER, account_id=None):
        async with session_maker() as db:
            user = User(email=email, name=email.split("@")[0])
            db.add(user)
            if account_id is None:
                account = Account(name=f"{user.name} workspace")
                db.add(account)
                await db.flush()
                account_id = account.id
            await db.flush()
            db.add(AccountMember(account_id=account_id, user_id=user.id, role=role))
            user.last_account_id = account_id
            await db.commit()
            user_id = user.id

        token = create_session_token(user_id, email=email, account_id=account_id)["token"]
        return user_id, account_id, {"Authorization": f"Bearer {token}"}

    return _seed
