from __future__ import annotations

"""Convenience factories for wiring the agent loop.

This module builds the persistence strategy, the turn locks and the default
``CoordinatorDeps`` bundle from ``Settings``:

- ``AGENT_LOOP_REDIS_URL`` set: ``KeyValueStateRepository`` over
  ``RedisKeyValueStore`` plus ``RedisSessionLocks``, sharing one client;
- otherwise: ``InMemoryStateRepository`` plus ``LocalSessionLocks``.

The process-wide default bundle is created lazily by ``get_default_deps``
and can be replaced with ``set_default_deps`` (application startup, tests).
"""

from typing import Any, Optional

import redis.asyncio as redis

from .core.config import Settings, settings
from .core.logging_config import get_logger
from .locks import LocalSessionLocks, RedisSessionLocks, SessionLockProvider
from .planning import KeywordTaskClassifier, ModelTaskClassifier, TaskClassifier
from .repos import (
    AgentLoopStateRepository,
    InMemoryStateRepository,
    KeyValueStateRepository,
    RedisKeyValueStore,
)
from .runtime import ActHandler, CoordinatorDeps

logger = get_logger(__name__)

_default_deps: Optional[CoordinatorDeps] = None


def build_repository(cfg: Settings, client: Optional["redis.Redis"] = None) -> AgentLoopStateRepository:
    """Build the session repository selected by ``cfg``."""
    if client is None and not cfg.redis_url:
        return InMemoryStateRepository()
    store = RedisKeyValueStore(client) if client is not None else RedisKeyValueStore.from_url(cfg.redis_url or "")
    return KeyValueStateRepository(store, prefix=cfg.key_prefix, ttl_seconds=cfg.state_ttl_seconds)


def build_locks(cfg: Settings, client: Optional["redis.Redis"] = None) -> SessionLockProvider:
    """Build the per-session turn locks matching the repository strategy."""
    if client is None:
        return LocalSessionLocks()
    return RedisSessionLocks(client, config=cfg.redis_lock, prefix=f"{cfg.key_prefix}-lock")


def build_default_deps(
    cfg: Optional[Settings] = None,
    *,
    model: Any | None = None,
    act_handler: Optional[ActHandler] = None,
) -> CoordinatorDeps:
    """Construct a ``CoordinatorDeps`` bundle from settings.

    ``model`` enables the LLM task classifier; without it the keyword rules
    are used.
    """
    cfg = cfg or settings
    client = redis.from_url(cfg.redis_url, decode_responses=True) if cfg.redis_url else None
    classifier: TaskClassifier = ModelTaskClassifier(model=model) if model is not None else KeywordTaskClassifier()
    deps = CoordinatorDeps(
        repository=build_repository(cfg, client),
        locks=build_locks(cfg, client),
        classifier=classifier,
        reflection=cfg.reflection,
        act_handler=act_handler,
    )
    logger.debug(f"Built agent loop dependencies ({'redis' if client is not None else 'in-memory'} persistence)")
    return deps


def get_default_deps() -> CoordinatorDeps:
    """Return the process-wide dependency bundle, building it on first use."""
    global _default_deps
    if _default_deps is None:
        _default_deps = build_default_deps()
    return _default_deps


def set_default_deps(deps: Optional[CoordinatorDeps]) -> None:
    """Replace the process-wide dependency bundle; ``None`` rebuilds it on next use."""
    global _default_deps
    _default_deps = deps
