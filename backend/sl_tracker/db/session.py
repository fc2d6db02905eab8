from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from sl_tracker.config import settings
from sl_tracker.models.base import Base


def create_session_factory(database_url: str) -> tuple[AsyncEngine, async_sessionmaker]:
    """Build an async engine plus a session factory bound to it."""
    engine = create_async_engine(database_url, pool_pre_ping=True)
    return engine, async_sessionmaker(engine, expire_on_commit=False)


async def init_models(engine: AsyncEngine) -> None:
    """Create catalog tables if they don't exist."""
    from sl_tracker.models import tables  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


engine, async_session = create_session_factory(settings.database_url)
