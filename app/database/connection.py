# file: app/database/connection.py

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from app.config import get_settings
from app.database.models import Base

DATABASE_URL = get_settings().database_url

engine = create_async_engine(DATABASE_URL, echo=False)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)

__all__ = ["Base", "AsyncSessionLocal", "engine", "get_db", "get_session_factory", "init_db"]


async def get_db():
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


def get_session_factory() -> async_sessionmaker:
    """For jobs that open several short sessions of their own."""
    return AsyncSessionLocal


async def init_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
