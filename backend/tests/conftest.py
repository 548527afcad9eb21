"""
Shared fixtures: in-memory SQLite engine per test, a ticking clock and
seeded users standing in for the account subsystem.
"""

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from forum_engine.core.database import init_db
from forum_engine.models.forum import Category
from forum_engine.models.user import User, UserRole
from forum_engine.modules.forum.service import ForumService


class TickingClock:
    """Clock that advances by a fixed step on every call."""

    def __init__(
        self,
        start: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc),
        step: timedelta = timedelta(seconds=1),
    ) -> None:
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        self.now += self.step
        return self.now


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    maker = async_sessionmaker(engine, expire_on_commit=False)
    async with maker() as session:
        yield session


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture
def forum(session: AsyncSession, clock: TickingClock) -> ForumService:
    return ForumService(session, clock=clock)


async def _add_user(session: AsyncSession, username: str, role: UserRole) -> User:
    user = User(username=username, email=f"{username}@example.com", role=role)
    session.add(user)
    await session.commit()
    return user


@pytest_asyncio.fixture
async def admin(session: AsyncSession) -> User:
    return await _add_user(session, "admin", UserRole.ADMIN)


@pytest_asyncio.fixture
async def editor(session: AsyncSession) -> User:
    return await _add_user(session, "editor", UserRole.EDITOR)


@pytest_asyncio.fixture
async def viewer(session: AsyncSession) -> User:
    return await _add_user(session, "viewer", UserRole.VIEWER)


@pytest_asyncio.fixture
async def category(forum: ForumService) -> Category:
    return await forum.create_category("General", "Anything goes", "#336699")
