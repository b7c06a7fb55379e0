"""
Redis key-value store.

Uses redis.asyncio so store calls never block the event loop.
Redis errors surface as StoreUnavailableError.
"""
from typing import Optional

from redis import RedisError
from redis.asyncio import Redis

from fortunebot.core.errors import StoreUnavailableError


class RedisKeyValueStore:
    """Redis implementation of the KeyValueStore protocol."""

    def __init__(self, redis_url: Optional[str] = None, client: Optional[Redis] = None):
        if client is None and not redis_url:
            raise StoreUnavailableError("REDIS_URL not configured")
        self.client = client or Redis.from_url(redis_url, decode_responses=True)

    async def get(self, key: str) -> Optional[str]:
        try:
            value = await self.client.get(key)
        except RedisError as e:
            raise StoreUnavailableError(f"Redis GET failed: {e}")
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> None:
        try:
            await self.client.set(key, value, ex=ex)
        except RedisError as e:
            raise StoreUnavailableError(f"Redis SET failed: {e}")

    async def delete(self, key: str) -> None:
        try:
            await self.client.delete(key)
        except RedisError as e:
            raise StoreUnavailableError(f"Redis DELETE failed: {e}")

    async def close(self) -> None:
        await self.client.aclose()
