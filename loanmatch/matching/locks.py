"""Per-batch Redis lock so two runs never process the same batch tag at once."""

from __future__ import annotations

import logging
from types import TracebackType

import redis.asyncio as aioredis
from redis.exceptions import LockError

from loanmatch.errors import BatchLockedError

logger = logging.getLogger(__name__)


def lock_key(batch_tag: str) -> str:
    return f"lock:batch:{batch_tag}"


class BatchLock:
    """Async context manager holding the lock for one batch tag.

    Usage:
        async with BatchLock(redis_client, "2026-10-upload", timeout=900):
            await orchestrator.run("2026-10-upload")
    """

    def __init__(self, redis: aioredis.Redis, batch_tag: str, timeout: int = 900) -> None:
        self.batch_tag = batch_tag
        self._lock = redis.lock(lock_key(batch_tag), timeout=timeout)

    async def __aenter__(self) -> BatchLock:
        if not await self._lock.acquire(blocking=False):
            logger.warning("Batch %s is locked by another run", self.batch_tag)
            raise BatchLockedError(self.batch_tag)
        logger.debug("Batch lock acquired: %s", self.batch_tag)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        try:
            await self._lock.release()
        except LockError:
            # Expired while held; another run may already own it.
            logger.warning("Batch lock for %s expired before release", self.batch_tag)
