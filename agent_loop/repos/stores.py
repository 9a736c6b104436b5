"""Key-value store implementations backing ``KeyValueStateRepository``.

- ``RedisKeyValueStore`` shares state between every process pointed at the
  same Redis instance.
- ``InMemoryKeyValueStore`` keeps values in a dict with the same expiration
  semantics. It is process-local and mainly used by tests and single-process
  deployments that want TTL behaviour without Redis.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from fnmatch import fnmatchcase
from typing import Any, Dict, Optional

import redis.asyncio as redis


class InMemoryKeyValueStore:
    """In-memory key-value store with TTL support."""

    def __init__(self) -> None:
        self._entries: Dict[str, Dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    async def get(self, key: str) -> Optional[str]:
        """Get value if present and not expired."""
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._now() >= entry["expires_at"]:
                del self._entries[key]
                return None
            return entry["value"]

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Set a value with TTL."""
        async with self._lock:
            self._entries[key] = {
                "value": value,
                "expires_at": self._now() + timedelta(seconds=ttl_seconds),
            }

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._entries.pop(key, None)

    async def keys(self, pattern: str) -> list[str]:
        """List live keys matching a glob pattern, dropping expired entries on the way."""
        async with self._lock:
            now = self._now()
            expired = [k for k, entry in self._entries.items() if now >= entry["expires_at"]]
            for k in expired:
                del self._entries[k]
            return [k for k in self._entries if fnmatchcase(k, pattern)]

    def size(self) -> int:
        """Number of stored entries, expired ones included until next access."""
        return len(self._entries)


class RedisKeyValueStore:
    """``KeyValueStore`` over a ``redis.asyncio`` client.

    The client must be created with ``decode_responses=True`` so reads return
    ``str``; ``from_url`` does that for you.
    """

    def __init__(self, client: "redis.Redis") -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisKeyValueStore":
        return cls(redis.from_url(url, decode_responses=True))

    @property
    def client(self) -> "redis.Redis":
        return self._client

    async def get(self, key: str) -> Optional[str]:
        return await self._client.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._client.set(key, value, ex=ttl_seconds)

    async def delete(self, key: str) -> None:
        await self._client.delete(key)

    async def keys(self, pattern: str) -> list[str]:
        # SCAN instead of KEYS so large databases are not blocked.
        return [key async for key in self._client.scan_iter(match=pattern)]

    async def close(self) -> None:
        await self._client.aclose()
