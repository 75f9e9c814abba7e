"""
Database Module - Upstash Redis client

Provides the singleton async Upstash Redis client used as the durable
cart store, and the key layout for cart payloads.
"""

import os
from typing import Optional

from upstash_redis.asyncio import Redis as AsyncRedis


# Upstash uses REST_URL and REST_TOKEN
UPSTASH_REDIS_REST_URL = os.environ.get("UPSTASH_REDIS_REST_URL", "")
UPSTASH_REDIS_REST_TOKEN = os.environ.get("UPSTASH_REDIS_REST_TOKEN", "")


_redis_client: Optional[AsyncRedis] = None


def get_redis() -> AsyncRedis:
    """
    Get async Upstash Redis client (singleton).

    Uses standard Upstash env var names:
    - UPSTASH_REDIS_REST_URL
    - UPSTASH_REDIS_REST_TOKEN
    """
    global _redis_client

    if _redis_client is None:
        if not UPSTASH_REDIS_REST_URL or not UPSTASH_REDIS_REST_TOKEN:
            raise ValueError("UPSTASH_REDIS_REST_URL and UPSTASH_REDIS_REST_TOKEN must be set")
        _redis_client = AsyncRedis(url=UPSTASH_REDIS_REST_URL, token=UPSTASH_REDIS_REST_TOKEN)

    return _redis_client


class RedisKeys:
    """Redis key prefixes."""

    CART = "cart:"  # cart:{namespace}:{storage_key}

    @staticmethod
    def cart_key(storage_key: str, namespace: Optional[str] = None) -> str:
        if namespace:
            return f"{RedisKeys.CART}{namespace}:{storage_key}"
        return f"{RedisKeys.CART}{storage_key}"
