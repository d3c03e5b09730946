"""Named locks for read-recount-write units of work.

With Redis configured, locks are Redis locks shared by every API worker.
Without Redis (single-process deployments, tests) they fall back to
in-process asyncio locks keyed by the same names.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from redis.exceptions import LockError

from learntrack.core.logging import get_logger


if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = get_logger(__name__)


class LockTimeoutError(Exception):
    """Lock could not be acquired within the blocking timeout."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Could not acquire lock {key}")


class LockManager:
    """Hands out named locks, distributed when Redis is available."""

    def __init__(
        self,
        redis: "Redis | None" = None,
        timeout: float = 10.0,
        blocking_timeout: float = 5.0,
    ):
        self.redis = redis
        self.timeout = timeout
        self.blocking_timeout = blocking_timeout
        self._local_locks: dict[str, asyncio.Lock] = {}
        self._local_holders: dict[str, int] = {}

    @property
    def is_distributed(self) -> bool:
        return self.redis is not None

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Hold the lock named ``key`` for the duration of the block.

        Raises:
            LockTimeoutError: If the lock is not acquired in time
        """
        if self.redis is None:
            async with self._hold_local(key):
                yield
            return

        lock = self.redis.lock(
            key,
            timeout=self.timeout,
            blocking_timeout=self.blocking_timeout,
        )
        if not await lock.acquire():
            logger.warning("lock_acquire_timeout", key=key)
            raise LockTimeoutError(key)

        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError:
                # Expired while held; the work inside has already been applied
                logger.warning("lock_expired_before_release", key=key)

    @asynccontextmanager
    async def _hold_local(self, key: str) -> AsyncIterator[None]:
        lock = self._local_locks.get(key)
        if lock is None:
            lock = self._local_locks[key] = asyncio.Lock()
        self._local_holders[key] = self._local_holders.get(key, 0) + 1
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self.blocking_timeout)
            except TimeoutError as e:
                logger.warning("lock_acquire_timeout", key=key, distributed=False)
                raise LockTimeoutError(key) from e
            try:
                yield
            finally:
                lock.release()
        finally:
            # Entries live only while a task holds or awaits the lock
            self._local_holders[key] -= 1
            if not self._local_holders[key]:
                del self._local_holders[key]
                del self._local_locks[key]
