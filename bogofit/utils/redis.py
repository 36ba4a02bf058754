from functools import lru_cache

import redis

from bogofit.core.config import settings


@lru_cache(maxsize=1)
def get_redis_client() -> redis.Redis:
    """Shared Redis client with string responses."""
    return redis.Redis(
        host=settings.REDIS_HOST,
        port=settings.REDIS_PORT,
        db=settings.REDIS_DB,
        decode_responses=True,
    )
