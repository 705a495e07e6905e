"""Per-key mutual exclusion for calendar mutations."""

import asyncio
import time
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any
from uuid import UUID, uuid4

import structlog
from redis.asyncio import Redis
from redis.asyncio.lock import Lock
from redis.exceptions import LockNotOwnedError

from app.core.exceptions import LockNotAcquiredException

logger = structlog.get_logger(__name__)


def doctor_lock_key(doctor_id: UUID | str) -> str:
    """Lock key serializing calendar mutations of one doctor."""
    return f"locks:doctor:{doctor_id}"


class LockManager(ABC):
    """
    Base class for lock managers.

    ``acquire`` is an async context manager: the lock is held for the body
    of the ``async with`` block and released on every exit path. Acquisition
    is attempted once and then retried ``retry_count`` times with a fixed
    ``retry_delay_ms`` pause; when the budget is exhausted
    ``LockNotAcquiredException`` is raised.
    """

    def __init__(
        self,
        ttl_ms: int = 5000,
        retry_count: int = 3,
        retry_delay_ms: int = 200,
    ):
        """Initialize lock timing parameters."""
        self.ttl_ms = ttl_ms
        self.retry_count = retry_count
        self.retry_delay_ms = retry_delay_ms

    @abstractmethod
    async def _acquire(self, key: str, ttl_ms: int) -> Any | None:
        """Take the lock within the retry budget, returning a release handle or None."""

    @abstractmethod
    async def _release(self, key: str, handle: Any) -> bool:
        """Release the lock; False if it had already expired."""

    @asynccontextmanager
    async def acquire(self, key: str, ttl_ms: int | None = None) -> AsyncIterator[Any]:
        """
        Hold the lock for ``key`` for the duration of the block.

        Args:
            key: Lock key
            ttl_ms: Lock lifetime, defaults to the manager's TTL

        Yields:
            The handle identifying this holder

        Raises:
            LockNotAcquiredException: If the retry budget is exhausted
        """
        ttl = ttl_ms or self.ttl_ms

        handle = await self._acquire(key, ttl)
        if handle is None:
            logger.warning("lock_acquire_failed", key=key, attempts=self.retry_count + 1)
            raise LockNotAcquiredException(key)

        logger.debug("lock_acquired", key=key, ttl_ms=ttl)
        try:
            yield handle
        finally:
            try:
                released = await self._release(key, handle)
            except Exception as e:
                logger.warning("lock_release_failed", key=key, error=str(e))
            else:
                if not released:
                    # TTL ran out while the critical section was still running
                    logger.warning("lock_expired_before_release", key=key, ttl_ms=ttl)


class RedisLockManager(LockManager):
    """
    Distributed lock on a single Redis node, using redis-py's ``Lock``.

    ``Lock`` stores a random token with ``SET NX PX`` and releases through a
    compare-and-delete script, so a holder whose lock expired never deletes
    the next holder's lock.
    """

    def __init__(self, redis_client: Redis, **kwargs: Any):
        """Initialize with an asyncio Redis client."""
        super().__init__(**kwargs)
        self.redis = redis_client

    @property
    def blocking_timeout(self) -> float:
        """Seconds to keep retrying; half a delay of slack lets the last retry run."""
        return (self.retry_count + 0.5) * self.retry_delay_ms / 1000

    async def _acquire(self, key: str, ttl_ms: int) -> Lock | None:
        lock = self.redis.lock(
            key,
            timeout=ttl_ms / 1000,
            sleep=self.retry_delay_ms / 1000,
            blocking=True,
            blocking_timeout=self.blocking_timeout,
        )
        if await lock.acquire():
            return lock
        return None

    async def _release(self, key: str, handle: Lock) -> bool:
        try:
            await handle.release()
        except LockNotOwnedError:
            return False
        return True


class LocalLockManager(LockManager):
    """In-process lock with the same TTL and retry semantics, for one worker."""

    def __init__(self, **kwargs: Any):
        """Initialize an empty lock table."""
        super().__init__(**kwargs)
        self._holders: dict[str, tuple[str, float]] = {}

    def _try_take(self, key: str, token: str, ttl_ms: int) -> bool:
        now = time.monotonic()
        holder = self._holders.get(key)
        if holder is not None and holder[1] > now:
            return False
        self._holders[key] = (token, now + ttl_ms / 1000)
        return True

    async def _acquire(self, key: str, ttl_ms: int) -> str | None:
        token = uuid4().hex
        for attempt in range(self.retry_count + 1):
            if self._try_take(key, token, ttl_ms):
                return token
            if attempt < self.retry_count:
                await asyncio.sleep(self.retry_delay_ms / 1000)
        return None

    async def _release(self, key: str, handle: str) -> bool:
        holder = self._holders.get(key)
        if holder is None or holder[0] != handle:
            return False
        del self._holders[key]
        return True

    def is_locked(self, key: str) -> bool:
        """Check whether ``key`` is currently held."""
        holder = self._holders.get(key)
        return holder is not None and holder[1] > time.monotonic()
