"""Async engine and session factory for the credential database."""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from ytassets.core.config import settings
from ytassets.db.base import Base


def make_session_factory(url: str | None = None, **engine_kwargs) -> tuple[async_sessionmaker[AsyncSession], AsyncEngine]:
    """Create a fresh async engine + session factory.

    A new engine is created per batch run so it is bound to the running event loop.
    """
    engine_kwargs.setdefault("echo", False)
    engine_kwargs.setdefault("pool_pre_ping", True)
    engine = create_async_engine(url or settings.postgres_url, **engine_kwargs)
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False), engine


async def create_tables(engine: AsyncEngine) -> None:
    """Create the credential tables if they do not exist yet."""
    import ytassets.models  # noqa: F401  register mappers

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
