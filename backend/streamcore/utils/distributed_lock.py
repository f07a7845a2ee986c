"""
Redis-based aggregate locking.

Serializes mutating operations per aggregate (one stream event, one
giveaway) across API instances, in front of the repository transaction.
The repository's own row lock remains the source of correctness; the
Redis lock turns contention into a fast, explicit ``LockUnavailableError``
instead of a queue of blocked database connections.

Lock keys:
- lock:event:{id}      # lock, start, complete, submit winner, bonus queue
- lock:giveaway:{id}   # enter, pick winner
"""

import asyncio
import hashlib
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional
from uuid import uuid4

import redis.asyncio as redis

from streamcore.logging_config import get_logger
from streamcore.utils.errors import LockUnavailableError

if TYPE_CHECKING:
    from streamcore.repositories.base import Repository, UnitOfWork

logger = get_logger(__name__)


class LockScope(Enum):
    """Aggregate kinds that can be locked."""

    EVENT = "event"
    GIVEAWAY = "giveaway"


@dataclass
class LockInfo:
    """Lock metadata."""

    lock_key: str
    owner_id: str
    acquired_at: float
    expires_at: float
    scope: LockScope


class AggregateLockManager:
    """
    Redis-based lock per aggregate.

    Redis commands:
    - SET NX PX: atomic acquire with expiry
    - GET + DEL (Lua): owner-checked release
    """

    # Only the owner may delete the key; an expired lock taken over by
    # another process is left alone.
    RELEASE_LOCK_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        default_lock_timeout_ms: int = 10000,
        default_acquire_timeout_ms: int = 3000,
        retry_interval_ms: int = 50,
    ):
        self.redis = redis_client
        self.default_lock_timeout_ms = default_lock_timeout_ms
        self.default_acquire_timeout_ms = default_acquire_timeout_ms
        self.retry_interval_ms = retry_interval_ms

        self._instance_id = str(uuid4())
        self._release_script = None

    def _ensure_script(self) -> None:
        if self._release_script is None:
            self._release_script = self.redis.register_script(self.RELEASE_LOCK_SCRIPT)

    @staticmethod
    def make_lock_key(scope: LockScope, aggregate_id: int) -> str:
        return f"lock:{scope.value}:{aggregate_id}"

    def _make_owner_token(self) -> str:
        raw = f"{self._instance_id}:{time.time_ns()}:{uuid4().hex[:8]}"
        return hashlib.sha256(raw.encode()).hexdigest()[:32]

    async def acquire(
        self,
        scope: LockScope,
        aggregate_id: int,
        lock_timeout_ms: Optional[int] = None,
        acquire_timeout_ms: Optional[int] = None,
    ) -> LockInfo:
        """
        Acquire the lock, retrying at a fixed interval.

        Raises:
            LockUnavailableError: If the lock is still held after acquire_timeout_ms
        """
        self._ensure_script()

        lock_timeout = lock_timeout_ms or self.default_lock_timeout_ms
        acquire_timeout = acquire_timeout_ms or self.default_acquire_timeout_ms

        lock_key = self.make_lock_key(scope, aggregate_id)
        owner_token = self._make_owner_token()

        start_time = time.monotonic() * 1000

        while True:
            acquired = await self.redis.set(
                lock_key,
                owner_token,
                nx=True,
                px=lock_timeout,
            )

            if acquired:
                now = time.time()
                return LockInfo(
                    lock_key=lock_key,
                    owner_id=owner_token,
                    acquired_at=now,
                    expires_at=now + (lock_timeout / 1000),
                    scope=scope,
                )

            elapsed = (time.monotonic() * 1000) - start_time
            if elapsed >= acquire_timeout:
                logger.warning("lock_contended", lock_key=lock_key, waited_ms=int(elapsed))
                raise LockUnavailableError(lock_key, acquire_timeout)

            await asyncio.sleep(self.retry_interval_ms / 1000)

    async def release(self, lock_info: LockInfo) -> bool:
        """
        Release the lock if still owned.

        Returns:
            True if released, False if it had expired or been taken over
        """
        self._ensure_script()

        result = await self._release_script(
            keys=[lock_info.lock_key],
            args=[lock_info.owner_id],
        )

        if result != 1:
            logger.warning("lock_lost_before_release", lock_key=lock_info.lock_key)
        return result == 1

    async def is_locked(self, scope: LockScope, aggregate_id: int) -> bool:
        """Check if an aggregate is currently locked."""
        return await self.redis.exists(self.make_lock_key(scope, aggregate_id)) == 1

    @asynccontextmanager
    async def lock(
        self,
        scope: LockScope,
        aggregate_id: int,
        lock_timeout_ms: Optional[int] = None,
        acquire_timeout_ms: Optional[int] = None,
    ) -> AsyncIterator[LockInfo]:
        """
        Context manager for automatic acquire/release.

        ```python
        async with lock_manager.lock(LockScope.EVENT, 12):
            ...  # exclusive for event 12 across instances
        ```
        """
        lock_info = await self.acquire(
            scope,
            aggregate_id,
            lock_timeout_ms,
            acquire_timeout_ms,
        )
        try:
            yield lock_info
        finally:
            await self.release(lock_info)


class AggregateGuard:
    """
    Opens a repository transaction for one aggregate, optionally behind
    the Redis lock for that aggregate.

    Aggregates without an id yet (creation) get no lock.
    """

    def __init__(
        self,
        repository: "Repository",
        lock_manager: Optional[AggregateLockManager] = None,
    ):
        self.repository = repository
        self.lock_manager = lock_manager

    @asynccontextmanager
    async def event(self, event_id: Optional[int]) -> AsyncIterator["UnitOfWork"]:
        if self.lock_manager is None or event_id is None:
            async with self.repository.event_scope(event_id) as uow:
                yield uow
            return

        async with self.lock_manager.lock(LockScope.EVENT, event_id):
            async with self.repository.event_scope(event_id) as uow:
                yield uow

    @asynccontextmanager
    async def giveaway(self, giveaway_id: Optional[int]) -> AsyncIterator["UnitOfWork"]:
        if self.lock_manager is None or giveaway_id is None:
            async with self.repository.giveaway_scope(giveaway_id) as uow:
                yield uow
            return

        async with self.lock_manager.lock(LockScope.GIVEAWAY, giveaway_id):
            async with self.repository.giveaway_scope(giveaway_id) as uow:
                yield uow
