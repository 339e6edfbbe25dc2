from functools import lru_cache

import redis.asyncio as redis

from ..config import settings


@lru_cache(maxsize=1)
def get_redis() -> redis.Redis:
    """Process-wide client; the underlying connection pool is created once and reused."""
    return redis.from_url(settings.redis_url, decode_responses=True)
