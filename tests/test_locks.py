"""Tests for the per-batch Redis lock."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import LockError

from loanmatch.errors import BatchLockedError
from loanmatch.matching.locks import BatchLock, lock_key


def _make_redis(acquired: bool = True) -> tuple[MagicMock, AsyncMock]:
    lock = AsyncMock()
    lock.acquire = AsyncMock(return_value=acquired)
    lock.release = AsyncMock()
    redis = MagicMock()
    redis.lock = MagicMock(return_value=lock)
    return redis, lock


class TestBatchLock:
    @pytest.mark.asyncio()
    async def test_acquire_and_release(self):
        redis, lock = _make_redis()

        async with BatchLock(redis, "2026-10-upload", timeout=60):
            lock.release.assert_not_awaited()

        redis.lock.assert_called_once_with("lock:batch:2026-10-upload", timeout=60)
        lock.acquire.assert_awaited_once_with(blocking=False)
        lock.release.assert_awaited_once()

    @pytest.mark.asyncio()
    async def test_held_lock_raises(self):
        redis, lock = _make_redis(acquired=False)

        with pytest.raises(BatchLockedError) as exc_info:
            async with BatchLock(redis, "2026-10-upload"):
                pytest.fail("body must not run while the batch is locked")

        assert exc_info.value.batch_tag == "2026-10-upload"
        lock.release.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_released_on_error(self):
        redis, lock = _make_redis()

        with pytest.raises(RuntimeError):
            async with BatchLock(redis, "b"):
                raise RuntimeError("boom")

        lock.release.assert_awaited_once()

    @pytest.mark.asyncio()
    async def test_expired_lock_release_is_tolerated(self):
        redis, lock = _make_redis()
        lock.release = AsyncMock(side_effect=LockError("Cannot release an unlocked lock"))

        async with BatchLock(redis, "b"):
            pass

    def test_lock_key(self):
        assert lock_key("b1") == "lock:batch:b1"
