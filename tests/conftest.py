"""共用 fixture：每個測試一個記憶體 SQLite（StaticPool）＋ create_all。"""
import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from roster.database import Base
import roster.models  # noqa: F401


@pytest.fixture
async def async_engine_and_session():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    yield engine, async_session
    await engine.dispose()


@pytest.fixture
async def db(async_engine_and_session):
    _, async_session = async_engine_and_session
    async with async_session() as session:
        yield session
