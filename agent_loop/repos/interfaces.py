from __future__ import annotations

"""Persistence interface contracts.

The coordinator and the sweeper depend on these Protocols instead of concrete
storage implementations.

Contract guidelines
-------------------

- All methods are async.
- ``get_or_create`` is idempotent per session id while the stored state has
  not expired.
- A state written by ``save`` must reload into a manager whose ``to_json``
  output is a valid reload of what was written.
- ``save`` favours availability: implementations log write failures instead
  of raising them into the turn.
- ``KeyValueStore.set`` is an unconditional overwrite. Callers serialize
  turns per session (see ``agent_loop.locks``) to avoid lost updates.
"""

from typing import Optional, Protocol

from ..schemas.domain import AgentLoopState, SessionSeed
from ..state.manager import AgentLoopStateManager


class AgentLoopStateRepository(Protocol):
    """Load, store and enumerate per-session agent loop state."""

    async def get_or_create(
        self, session_id: str, initial: Optional[SessionSeed] = None
    ) -> AgentLoopStateManager:
        """
        Return the manager of an existing session or create a new one.

        Args:
            session_id: The session identifier.
            initial: Seed values used only when the session does not exist.

        Returns:
            The state manager for the session.
        """
        ...

    async def save(self, manager: AgentLoopStateManager) -> None:
        """
        Persist the full state held by a manager.

        Args:
            manager: The manager whose state is written back.
        """
        ...

    async def delete(self, session_id: str) -> None:
        """
        Remove a session's state.

        Args:
            session_id: The session identifier.
        """
        ...

    async def list_states(self) -> list[AgentLoopState]:
        """
        Snapshot every session state currently known to the repository.

        Returns:
            A list of AgentLoopState snapshots.
        """
        ...


class KeyValueStore(Protocol):
    """Minimal string key-value store with per-key expiration."""

    async def get(self, key: str) -> Optional[str]:
        """
        Read a value.

        Args:
            key: The key to read.

        Returns:
            The stored value, or None if absent or expired.
        """
        ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """
        Write a value and (re)start its expiration.

        Args:
            key: The key to write.
            value: The serialized value.
            ttl_seconds: Time-to-live in seconds.
        """
        ...

    async def delete(self, key: str) -> None:
        """
        Remove a key. Removing a missing key is a no-op.

        Args:
            key: The key to remove.
        """
        ...

    async def keys(self, pattern: str) -> list[str]:
        """
        List keys matching a glob-style pattern (e.g. ``agent-loop:*``).

        Args:
            pattern: The glob pattern.

        Returns:
            The matching keys.
        """
        ...
