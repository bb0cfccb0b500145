"""Per-conversation turn lease stored in redis."""

import logging
import uuid

import redis.asyncio as aioredis
from redis.exceptions import WatchError

from shopchat.core.config import settings

logger = logging.getLogger(__name__)


class TurnGuard:
    """Ensures one in-flight turn per conversation across processes.

    A lease is a redis key ``turn:<conversation_id>`` set with NX and a TTL,
    so a crashed worker never blocks a conversation for longer than the TTL.
    """

    def __init__(self, redis: aioredis.Redis, ttl_seconds: int | None = None) -> None:
        self.redis = redis
        self.ttl_seconds = ttl_seconds or settings.turn_lease_ttl_seconds

    @staticmethod
    def _key(conversation_id: str) -> str:
        return f"turn:{conversation_id}"

    async def acquire(self, conversation_id: str) -> str | None:
        """Take the lease. Returns the lease token, or None if a turn is in flight."""
        token = uuid.uuid4().hex
        acquired = await self.redis.set(
            self._key(conversation_id), token, nx=True, ex=self.ttl_seconds
        )
        if not acquired:
            logger.info("Turn already in progress for %s", conversation_id)
            return None
        return token

    async def release(self, conversation_id: str, token: str) -> None:
        """Drop the lease if it is still ours (it may have expired and been retaken).

        The compare and delete run in a WATCH/MULTI transaction, so a lease
        taken by another worker between the two steps is never deleted.
        """
        key = self._key(conversation_id)
        async with self.redis.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(key)
                current = await pipe.get(key)
                if isinstance(current, bytes):
                    current = current.decode()
                if current != token:
                    return
                pipe.multi()
                pipe.delete(key)
                await pipe.execute()
            except WatchError:
                logger.info("Turn lease for %s changed during release, leaving it", conversation_id)
