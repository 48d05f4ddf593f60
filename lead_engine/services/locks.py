# lead_engine/services/locks.py
import asyncio
import logging
import uuid
from typing import Dict, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class SourceLockRegistry:
    """One asyncio.Lock per source: ring selection and advancement are single-writer per source."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}

    def get(self, source_id) -> asyncio.Lock:
        key = str(source_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock


# Shared by the API and the scheduler within one process
source_locks = SourceLockRegistry()


class JobRunLock:
    """
    "Job is running" lock. Always held in-process; when Redis is configured a
    ``SET NX EX`` key additionally keeps other processes from running the same job.
    """

    KEY_PREFIX = "lead_engine:job_lock:"

    def __init__(self, redis: Optional[Redis] = None, ttl_seconds: int = 900):
        self.redis = redis
        self.ttl_seconds = ttl_seconds
        self._locks: Dict[str, asyncio.Lock] = {}
        self._tokens: Dict[str, str] = {}

    def is_locked(self, name: str) -> bool:
        lock = self._locks.get(name)
        return bool(lock and lock.locked())

    def _key(self, name: str) -> str:
        return self.KEY_PREFIX + name.lower().replace(" ", "_")

    async def acquire(self, name: str) -> bool:
        lock = self._locks.setdefault(name, asyncio.Lock())
        if lock.locked():
            return False
        await lock.acquire()

        if self.redis is None:
            return True
        token = uuid.uuid4().hex
        try:
            acquired = await self.redis.set(self._key(name), token, nx=True, ex=self.ttl_seconds)
        except RedisError as e:
            logger.warning("Redis job lock unavailable for %s, using in-process lock only: %s", name, e)
            return True
        if not acquired:
            lock.release()
            return False
        self._tokens[name] = token
        return True

    async def release(self, name: str) -> None:
        token = self._tokens.pop(name, None)
        if token is not None and self.redis is not None:
            try:
                if await self.redis.get(self._key(name)) == token:
                    await self.redis.delete(self._key(name))
            except RedisError as e:
                logger.warning("Failed to release Redis job lock for %s: %s", name, e)
        lock = self._locks.get(name)
        if lock and lock.locked():
            lock.release()
