"""Shared fixtures: in-memory SQLite database and an HTTP client bound to the app."""

from __future__ import annotations

from typing import AsyncIterator, Callable

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from study_tracker.auth import get_request_user
from study_tracker.database import Base, MeetingStore, UserProfile, get_db
from study_tracker.main import app
from study_tracker.models import UserRole

ADVISOR_ID = "adv-1"


@pytest_asyncio.fixture
async def test_session() -> AsyncIterator[AsyncSession]:
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def store(test_session: AsyncSession) -> MeetingStore:
    return MeetingStore(test_session)


@pytest_asyncio.fixture
async def client(test_session: AsyncSession) -> AsyncIterator[AsyncClient]:
    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def login_as(client: AsyncClient) -> Callable[[str], None]:
    """Switch the user the API sees for the rest of the test."""

    def _login(user_id: str) -> None:
        app.dependency_overrides[get_request_user] = lambda: user_id

    return _login


@pytest_asyncio.fixture
async def advisor(test_session: AsyncSession, login_as: Callable[[str], None]) -> str:
    """An advisor profile, logged in."""
    test_session.add(UserProfile(id=ADVISOR_ID, name="Dr. Rivera", user_type=UserRole.ADVISOR.value))
    await test_session.commit()
    login_as(ADVISOR_ID)
    return ADVISOR_ID
