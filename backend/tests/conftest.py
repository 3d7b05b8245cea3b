import pytest
from typing import AsyncGenerator
from unittest.mock import AsyncMock, Mock

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from conviction.db.base import Base
from conviction.db.session import get_db
from conviction.main import app
from conviction.services.cache import InMemoryCache

# In-memory SQLite shared across connections of one engine
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh database per test"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def cache() -> InMemoryCache:
    return InMemoryCache(max_size=100)


@pytest.fixture
def mock_market():
    """MarketDataService stand-in with every lookup returning nothing"""
    market = Mock()
    market.get_token_metadata = AsyncMock(return_value=None)
    market.get_price = AsyncMock(return_value=None)
    market.get_metadata_many = AsyncMock(return_value={})
    market.get_prices_many = AsyncMock(return_value={})
    market.get_price_history = AsyncMock(return_value=[])
    market.get_base_asset_price = AsyncMock(return_value=150.0)
    market.close = AsyncMock()
    return market


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with no database configured"""
    async def no_db():
        yield None

    app.dependency_overrides[get_db] = no_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
async def db_client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app backed by the test database"""
    async def test_db():
        yield db_session

    app.dependency_overrides[get_db] = test_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
