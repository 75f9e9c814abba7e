"""Durable key-value storage for the cart payload."""
from typing import Optional, Protocol

import httpx
from upstash_redis.errors import UpstashError

from cakecart.db import RedisKeys, get_redis
from cakecart.errors import StorageError
from cakecart.logging import get_logger

logger = get_logger(__name__)


class KeyValueStore(Protocol):
    """What the cart store needs from a durable medium."""

    async def read(self, key: str) -> Optional[str]:
        ...

    async def write(self, key: str, value: str) -> None:
        ...


class RedisCartStorage:
    """
    Cart payload storage on Upstash Redis.

    Upstash command errors and HTTP transport errors are raised as
    StorageError; anything else propagates unchanged.

    Usage:
        storage = RedisCartStorage(namespace=str(user_id))
        await storage.write("@CakeCrafter_Cart_v1.0", payload)
    """

    def __init__(self, redis=None, namespace: Optional[str] = None, ttl_seconds: Optional[int] = None):
        self._redis = redis  # Lazy initialization
        self.namespace = namespace
        self.ttl_seconds = ttl_seconds

    @property
    def redis(self):
        """Get Redis client (lazy initialization)."""
        if self._redis is None:
            try:
                self._redis = get_redis()
            except ValueError as e:
                raise StorageError(f"Redis not available: {e}") from e
        return self._redis

    def _key(self, key: str) -> str:
        return RedisKeys.cart_key(key, self.namespace)

    async def read(self, key: str) -> Optional[str]:
        try:
            return await self.redis.get(self._key(key))
        except (UpstashError, httpx.HTTPError) as e:
            raise StorageError(f"Redis read failed: {e}") from e

    async def write(self, key: str, value: str) -> None:
        try:
            if self.ttl_seconds:
                await self.redis.set(self._key(key), value, ex=self.ttl_seconds)
            else:
                await self.redis.set(self._key(key), value)
        except (UpstashError, httpx.HTTPError) as e:
            raise StorageError(f"Redis write failed: {e}") from e
        logger.debug(f"Cart payload written ({len(value)} bytes)")
