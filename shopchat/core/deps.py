"""Dependency injection for FastAPI routes."""

from collections.abc import AsyncGenerator
from typing import Annotated

import redis.asyncio as aioredis
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from shopchat.core.config import settings
from shopchat.core.database import get_async_session, get_session_factory
from shopchat.services.conversation_store import ConversationStore, SqlConversationStore
from shopchat.services.turn_guard import TurnGuard


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a request-scoped database session."""
    async for session in get_async_session():
        yield session


# Shared Redis connection pool
_redis_pool: aioredis.ConnectionPool | None = None


def _get_redis_pool() -> aioredis.ConnectionPool:
    global _redis_pool  # noqa: PLW0603
    if _redis_pool is None:
        _redis_pool = aioredis.ConnectionPool.from_url(
            str(settings.redis_url), decode_responses=True
        )
    return _redis_pool


def get_redis() -> aioredis.Redis:
    """Return a Redis client on the shared connection pool.

    Not a yield dependency: the turn lease is released after the streamed
    response finishes, when request-scoped teardown has already run.
    """
    return aioredis.Redis(connection_pool=_get_redis_pool())


def get_conversation_store() -> ConversationStore:
    """Conversation store using one short-lived session per operation."""
    return SqlConversationStore(get_session_factory())


def get_turn_guard(redis: Annotated[aioredis.Redis, Depends(get_redis)]) -> TurnGuard:
    return TurnGuard(redis)


# Type aliases for route signatures
DBSession = Annotated[AsyncSession, Depends(get_db)]
RedisClient = Annotated[aioredis.Redis, Depends(get_redis)]
Store = Annotated[ConversationStore, Depends(get_conversation_store)]
Guard = Annotated[TurnGuard, Depends(get_turn_guard)]


__all__ = [
    "DBSession",
    "Guard",
    "RedisClient",
    "Store",
    "get_conversation_store",
    "get_db",
    "get_redis",
    "get_turn_guard",
]
