"""Persistence adapters for agent loop session state.

Responsibilities
----------------

- Provide small async interfaces (Protocols) the coordinator and sweeper
  depend on: ``AgentLoopStateRepository`` and ``KeyValueStore``.
- Offer two interchangeable strategies:

  - ``InMemoryStateRepository``: a process-local registry of live managers,
    suitable for a single long-lived server;
  - ``KeyValueStateRepository``: serialized state in a shared store with a
    TTL (``RedisKeyValueStore`` in production), suitable for several
    stateless instances.

- ``PersistingStateManager`` writes the state back after every mutation.
"""

from .interfaces import AgentLoopStateRepository, KeyValueStore
from .kv import KeyValueStateRepository
from .memory import InMemoryStateRepository
from .persisting import PersistingStateManager
from .stores import InMemoryKeyValueStore, RedisKeyValueStore

__all__ = [
    "AgentLoopStateRepository",
    "KeyValueStore",
    "KeyValueStateRepository",
    "InMemoryStateRepository",
    "PersistingStateManager",
    "InMemoryKeyValueStore",
    "RedisKeyValueStore",
]
