"""Shared test fixtures: async SQLite engine, test client, member/story helpers."""

import os

# Set env vars BEFORE importing readingstats modules (config reads at import time)
os.environ.setdefault("READINGSTATS_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ["READINGSTATS_CACHE_BACKEND"] = "memory"

from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from readingstats.core.cache import InMemoryBackend, get_cache  # noqa: E402
from readingstats.core.database import get_db  # noqa: E402
from readingstats.main import app  # noqa: E402
from readingstats.models import Base, Member, Story  # noqa: E402

# One shared in-memory database for every session in a test
test_engine = create_async_engine(
    "sqlite+aiosqlite:///:memory:",
    echo=False,
    poolclass=StaticPool,
    connect_args={"check_same_thread": False},
)
TestSession = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def _override_get_db():
    async with TestSession() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


@pytest.fixture
def cache():
    """Fresh in-memory cache, also served to the API."""
    backend = InMemoryBackend()
    app.dependency_overrides[get_cache] = lambda: backend
    yield backend
    app.dependency_overrides.pop(get_cache, None)


@pytest.fixture
async def client(cache):
    """Async HTTP client for the app, bound to the test database."""
    app.dependency_overrides[get_db] = _override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.pop(get_db, None)


@pytest.fixture
async def db():
    async with TestSession() as session:
        yield session


class FrozenClock:
    """Callable clock for services; move it with ``advance``."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, days: int = 0, hours: int = 0) -> None:
        self.now += timedelta(days=days, hours=hours)


@pytest.fixture
def clock():
    """Wednesday 2024-05-15, noon UTC."""
    return FrozenClock(datetime(2024, 5, 15, 12, 0, tzinfo=timezone.utc))


async def create_member(db: AsyncSession, name: str = "Reader", **fields) -> Member:
    """Helper: insert and commit a member."""
    member = Member(name=name, **fields)
    db.add(member)
    await db.commit()
    await db.refresh(member)
    return member


async def create_story(
    db: AsyncSession,
    title: str = "A Story",
    content: str = "",
    category_id: int | None = None,
) -> Story:
    """Helper: insert and commit a story."""
    story = Story(title=title, content=content, category_id=category_id)
    db.add(story)
    await db.commit()
    await db.refresh(story)
    return story


def member_headers(member_id: int) -> dict:
    """Helper: gateway identity headers for a member."""
    return {"X-Member-Id": str(member_id)}


def admin_headers(member_id: int = 999) -> dict:
    """Helper: gateway identity headers for an admin."""
    return {"X-Member-Id": str(member_id), "X-Member-Role": "admin"}
