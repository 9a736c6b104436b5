"""Per-session turn serialization.

Two turns of the same session must never run concurrently: the store write is
an unconditional overwrite, so overlapping turns would silently drop each
other's increments. Turns of different sessions run in parallel.

- ``LocalSessionLocks`` serializes turns inside one process with one
  ``asyncio.Lock`` per session id.
- ``RedisSessionLocks`` serializes turns across processes with
  ``SET key token NX PX ttl`` and a compare-and-delete release script. When
  Redis itself is unreachable the turn proceeds without the lock and a
  warning is logged.
"""

from __future__ import annotations

import asyncio
import time
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import AsyncIterator, Dict, Protocol
from uuid import uuid4

import redis.asyncio as redis
from redis.exceptions import RedisError

from .core.config import RedisLockConfig
from .core.logging_config import get_logger
from .errors import LockAcquisitionError

logger = get_logger(__name__)

DEFAULT_LOCK_PREFIX = "agent-loop-lock"

_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class SessionLockProvider(Protocol):
    """Hands out an exclusive hold on a session for the duration of one turn."""

    def hold(self, session_id: str) -> AbstractAsyncContextManager[None]:
        """
        Async context manager holding the session's lock.

        Args:
            session_id: The session identifier.

        Raises:
            LockAcquisitionError: If the lock could not be acquired in time.
        """
        ...


class LocalSessionLocks:
    """Process-local per-session locks."""

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, session_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        self._holders[session_id] = self._holders.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[session_id] -= 1
            if self._holders[session_id] == 0:
                del self._holders[session_id]
                del self._locks[session_id]

    def __len__(self) -> int:
        return len(self._locks)


class RedisSessionLocks:
    """Distributed per-session locks backed by Redis."""

    def __init__(
        self,
        client: "redis.Redis",
        *,
        config: RedisLockConfig | None = None,
        prefix: str = DEFAULT_LOCK_PREFIX,
    ) -> None:
        self._client = client
        self._config = config or RedisLockConfig()
        self._prefix = prefix

    def key_for(self, session_id: str) -> str:
        return f"{self._prefix}:{session_id}"

    async def _acquire(self, key: str, token: str) -> bool:
        """Return True once the lock is held, False when Redis is unavailable."""
        cfg = self._config
        deadline = time.monotonic() + cfg.timeout_ms / 1000
        while True:
            try:
                if await self._client.set(key, token, nx=True, px=cfg.ttl_ms):
                    logger.debug(f"Acquired lock: {key}")
                    return True
            except RedisError as e:
                logger.warning(f"Redis unavailable for locking {key} - proceeding without lock: {e}")
                return False

            if time.monotonic() >= deadline:
                raise LockAcquisitionError(key, cfg.timeout_ms)
            logger.debug(f"Lock {key} is held by another instance, retrying...")
            await asyncio.sleep(cfg.retry_interval_ms / 1000)

    async def _release(self, key: str, token: str) -> None:
        try:
            await self._client.eval(_RELEASE_SCRIPT, 1, key, token)
            logger.debug(f"Released lock: {key}")
        except RedisError as e:
            logger.error(f"Error releasing lock {key}: {e}")

    @asynccontextmanager
    async def hold(self, session_id: str) -> AsyncIterator[None]:
        key = self.key_for(session_id)
        token = str(uuid4())
        locked = await self._acquire(key, token)
        try:
            yield
        finally:
            if locked:
                await self._release(key, token)
