from __future__ import annotations

import fnmatch
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Iterator, List, Optional

import pytest
from dotenv import load_dotenv
from redis.exceptions import ConnectionError as RedisConnectionError

TEST_ROOT = Path(__file__).resolve().parent
# Load test/.env first, then fallback to test/.env.example for defaults
load_dotenv(TEST_ROOT / ".env", override=False)
load_dotenv(TEST_ROOT / ".env.example", override=False)

from agent_loop import factory  # noqa: E402


class FakeRedis:
    """Just enough of ``redis.asyncio.Redis`` for the store and the locks.

    ``fail`` makes every command raise a connection error, as an unreachable
    server would.
    """

    def __init__(self) -> None:
        self.data: Dict[str, str] = {}
        self.ttls: Dict[str, Dict[str, Any]] = {}
        self.calls: List[tuple[str, tuple]] = []
        self.fail = False
        self.closed = False

    def _check(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        if self.fail:
            raise RedisConnectionError("connection refused")

    async def get(self, key: str) -> Optional[str]:
        self._check("get", key)
        return self.data.get(key)

    async def set(
        self,
        key: str,
        value: str,
        ex: Optional[int] = None,
        px: Optional[int] = None,
        nx: bool = False,
    ) -> Optional[bool]:
        self._check("set", key, value)
        if nx and key in self.data:
            return None
        self.data[key] = value
        self.ttls[key] = {"ex": ex, "px": px}
        return True

    async def delete(self, *keys: str) -> int:
        self._check("delete", *keys)
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
        return removed

    async def scan_iter(self, match: str = "*") -> AsyncIterator[str]:
        self._check("scan_iter", match)
        for key in list(self.data):
            if fnmatch.fnmatchcase(key, match):
                yield key

    async def eval(self, script: str, numkeys: int, *args: str) -> int:
        self._check("eval", *args)
        key, token = args[0], args[1]
        if self.data.get(key) == token:
            del self.data[key]
            return 1
        return 0

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture(autouse=True)
def _reset_default_deps() -> Iterator[None]:
    """Every test starts without a process-wide dependency bundle."""
    factory.set_default_deps(None)
    yield
    factory.set_default_deps(None)
