"""Per-therapist locking for the check-then-write critical section."""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Dict

from ..exceptions import ConcurrencyConflictError

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TTL_MS = 5000
DEFAULT_ACQUIRE_RETRIES = 8
DEFAULT_BACKOFF_MS = 50

# Lua script for atomic compare-and-delete
COMPARE_AND_DELETE = """
if redis.call("get", KEYS[1]) == ARGV[1] then
  return redis.call("del", KEYS[1])
else
  return 0
end
"""


class TherapistLockManager:
    """In-process lock per therapist; enough for a single worker."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, therapist_id: str) -> asyncio.Lock:
        lock = self._locks.get(therapist_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[therapist_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, therapist_id: str):
        lock = self._lock_for(therapist_id)
        async with lock:
            yield


class RedisTherapistLock:
    """
    Distributed lock per therapist for multi-worker deployments.

    Each holder writes a random token with ``SET NX PX``; release deletes the
    key only while it still carries that token, so an expired lock taken over
    by another worker is never released by the previous holder. Acquisition
    backs off linearly: attempt ``n`` waits ``n * backoff_ms`` before retrying.
    """

    key_prefix = "therapist_lock"

    def __init__(
        self,
        redis_client,
        ttl_ms: int = DEFAULT_LOCK_TTL_MS,
        retries: int = DEFAULT_ACQUIRE_RETRIES,
        backoff_ms: int = DEFAULT_BACKOFF_MS
    ):
        """
        Args:
            redis_client: Synchronous Redis client (redis-py)
            ttl_ms: Lock TTL in milliseconds
            retries: Extra acquisition attempts after the first one fails
            backoff_ms: Base wait between attempts in milliseconds
        """
        self.redis = redis_client
        self.ttl_ms = ttl_ms
        self.retries = retries
        self.backoff_ms = backoff_ms

    @classmethod
    def from_settings(cls, redis_client, settings) -> "RedisTherapistLock":
        return cls(
            redis_client,
            ttl_ms=settings.LOCK_TTL_MS,
            retries=settings.LOCK_ACQUIRE_RETRIES,
            backoff_ms=settings.LOCK_BACKOFF_MS,
        )

    def key(self, therapist_id: str) -> str:
        return f"{self.key_prefix}:{therapist_id}"

    def _try_set(self, key: str, token: str) -> bool:
        return bool(self.redis.set(key, token, nx=True, px=self.ttl_ms))

    async def _acquire(self, therapist_id: str, key: str, token: str) -> None:
        if self._try_set(key, token):
            return
        for attempt in range(1, self.retries + 1):
            await asyncio.sleep(self.backoff_ms * attempt / 1000)
            if self._try_set(key, token):
                logger.debug(f"Therapist lock {key} acquired on retry {attempt}")
                return
        raise ConcurrencyConflictError(
            therapist_id,
            f"Another booking for therapist {therapist_id} is in progress, please retry"
        )

    def _release(self, key: str, token: str) -> None:
        try:
            released = self.redis.eval(COMPARE_AND_DELETE, 1, key, token)
        except Exception as e:
            # The TTL frees the key anyway
            logger.warning(f"Could not release therapist lock {key}: {e}")
            return
        if not released:
            logger.warning(f"Therapist lock {key} expired before release (ttl {self.ttl_ms} ms)")

    @asynccontextmanager
    async def hold(self, therapist_id: str):
        """
        Hold the therapist lock for the duration of the block.

        Raises:
            ConcurrencyConflictError: If the lock is still taken after all retries
        """
        key = self.key(therapist_id)
        token = uuid.uuid4().hex
        await self._acquire(therapist_id, key, token)
        try:
            yield
        finally:
            self._release(key, token)
