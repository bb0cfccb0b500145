"""Async SQLAlchemy engine and session factory."""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from shopchat.core.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=False,
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the process-wide session factory.

    The conversation store opens one short-lived session per operation, so
    streaming responses never hold a request-scoped session open.
    """
    return async_session_factory


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a database session for request-scoped work."""
    async with async_session_factory() as session:
        yield session


async def create_tables() -> None:
    """Create all tables (development convenience, gated by settings)."""
    from shopchat.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
