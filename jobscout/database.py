"""
Database engine and session management.
"""
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from jobscout.config import settings

engine = create_async_engine(settings.database_url, echo=settings.debug)

AsyncSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)

Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a session bound to the current engine."""
    # Looked up at call time so tests can swap the sessionmaker
    import jobscout.database
    async with jobscout.database.AsyncSessionLocal() as session:
        yield session


async def init_models() -> None:
    """Create all tables. Used for bootstrap; migrations are managed elsewhere."""
    import jobscout.database
    # Register models with Base.metadata
    import jobscout.models  # noqa: F401
    async with jobscout.database.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
