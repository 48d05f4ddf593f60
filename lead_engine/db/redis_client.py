# lead_engine/db/redis_client.py
from typing import Optional

import redis.asyncio as redis

from lead_engine.core.config import get_settings

_redis_client: Optional[redis.Redis] = None


def get_redis_client() -> Optional[redis.Redis]:
    """
    Lazily create the shared Redis client.
    Returns None when REDIS_URL is not configured; callers then fall back to
    in-process locking only.
    """
    global _redis_client
    url = get_settings().redis_url
    if not url:
        return None
    if _redis_client is None:
        _redis_client = redis.from_url(url, decode_responses=True)
    return _redis_client


async def close_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
