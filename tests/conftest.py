import os
from typing import Any, AsyncGenerator, Dict, Generator
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID, uuid4

# Must be set before app.database is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("EVENT_BUS_BACKEND", "memory")
os.environ.setdefault("COMMIT_HASH", "test")

import pytest  # noqa: E402
from dotenv import load_dotenv  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

import app.models.db  # noqa: E402,F401
from app.clock import utcnow  # noqa: E402
from app.database import Base  # noqa: E402
from app.main import app  # noqa: E402
from app.models.db.user_model import UserModel  # noqa: E402
from app.realtime.memory_event_bus import InMemoryEventBus  # noqa: E402

load_dotenv()

TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture(scope="function")
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create a fresh in-memory database for one integration test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=os.getenv("SQL_DEBUG", "false").lower() == "true",
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Clean up
    await engine.dispose()


@pytest.fixture(scope="function")
async def test_db(test_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for integration tests.

    Services commit, so isolation comes from the per-test engine rather
    than a rolled back transaction.
    """
    session_factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )

    async with session_factory() as session:
        yield session


@pytest.fixture(scope="function")
async def event_bus() -> AsyncGenerator[InMemoryEventBus, None]:
    """A connected in-process event bus."""
    bus = InMemoryEventBus()
    await bus.connect()
    yield bus
    await bus.close()


@pytest.fixture(scope="function")
async def users(test_db: AsyncSession) -> Dict[str, UUID]:
    """Profiles for alice, bob and carol, keyed by username."""
    now = utcnow()
    profiles = {name: uuid4() for name in ("alice", "bob", "carol")}
    for name, user_id in profiles.items():
        test_db.add(
            UserModel(
                id=user_id,
                username=name,
                status="offline",
                last_seen_at=now,
                created_at=now,
            )
        )
    await test_db.commit()
    return profiles


@pytest.fixture(scope="function")
async def mock_db() -> AsyncGenerator[AsyncMock, None]:
    """Create a mock database session for unit tests."""
    # Use mock to avoid database connection issues in unit tests
    mock_session = AsyncMock()
    mock_session.commit = AsyncMock()
    mock_session.rollback = AsyncMock()
    mock_session.close = AsyncMock()
    mock_session.refresh = AsyncMock()
    mock_session.execute = AsyncMock()
    mock_session.flush = AsyncMock()
    mock_session.delete = AsyncMock()
    mock_session.add = MagicMock()  # add is sync, not async

    yield mock_session


@pytest.fixture
def client() -> Generator[TestClient, Any, None]:
    """Create a test client for the FastAPI app."""
    with TestClient(app) as test_client:
        yield test_client
