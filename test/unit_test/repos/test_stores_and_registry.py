from __future__ import annotations

from datetime import timedelta

import pytest

from agent_loop.repos import InMemoryKeyValueStore, InMemoryStateRepository, RedisKeyValueStore
from agent_loop.schemas.domain import SessionSeed


@pytest.mark.asyncio
async def test_in_memory_store_get_set_delete() -> None:
    store = InMemoryKeyValueStore()

    await store.set("k", "v", ttl_seconds=60)
    assert await store.get("k") == "v"

    await store.delete("k")
    assert await store.get("k") is None
    await store.delete("k")


@pytest.mark.asyncio
async def test_in_memory_store_expires_entries() -> None:
    store = InMemoryKeyValueStore()
    await store.set("k", "v", ttl_seconds=60)
    store._entries["k"]["expires_at"] -= timedelta(seconds=61)

    assert await store.get("k") is None
    assert store.size() == 0


@pytest.mark.asyncio
async def test_in_memory_store_keys_glob() -> None:
    store = InMemoryKeyValueStore()
    await store.set("agent-loop:a", "1", 60)
    await store.set("agent-loop:b", "2", 60)
    await store.set("agent-loop-lock:a", "3", 60)

    assert sorted(await store.keys("agent-loop:*")) == ["agent-loop:a", "agent-loop:b"]


@pytest.mark.asyncio
async def test_redis_store_delegates_to_client(fake_redis) -> None:
    store = RedisKeyValueStore(fake_redis)

    await store.set("agent-loop:a", "1", ttl_seconds=30)
    await store.set("agent-loop-lock:a", "t", ttl_seconds=30)

    assert await store.get("agent-loop:a") == "1"
    assert fake_redis.ttls["agent-loop:a"]["ex"] == 30
    assert await store.keys("agent-loop:*") == ["agent-loop:a"]

    await store.delete("agent-loop:a")
    assert await store.get("agent-loop:a") is None

    await store.close()
    assert fake_redis.closed is True


def test_redis_store_from_url_decodes_responses() -> None:
    store = RedisKeyValueStore.from_url("redis://localhost:6379/0")

    assert store.client.connection_pool.connection_kwargs["decode_responses"] is True


@pytest.mark.asyncio
async def test_in_memory_registry_returns_live_manager() -> None:
    repo = InMemoryStateRepository()

    first = await repo.get_or_create("s1", SessionSeed(project_id="p1"))
    second = await repo.get_or_create("s1", SessionSeed(project_id="other"))

    assert first is second
    assert first.get_state().project_id == "p1"
    assert "s1" in repo
    assert len(repo) == 1


@pytest.mark.asyncio
async def test_in_memory_registry_delete_and_list() -> None:
    repo = InMemoryStateRepository()
    await repo.get_or_create("s1")
    await repo.get_or_create("s2")

    await repo.delete("s1")
    await repo.delete("missing")

    assert [s.session_id for s in await repo.list_states()] == ["s2"]
