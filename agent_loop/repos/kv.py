"""Shared-store session repository.

``KeyValueStateRepository`` stores each session's serialized state under
``{prefix}:{session_id}`` in a ``KeyValueStore`` with a fixed time-to-live,
so any process of a horizontally scaled tier can resume the session.

Failure policy
--------------

- Entries that cannot be decoded are logged and treated as a miss;
  ``get_or_create`` then starts a fresh state and writes it over the entry.
- Reads that fail are logged. ``get_or_create`` still hands back a fresh
  state, but the session is flagged and ``save`` leaves its stored entry
  alone until a later read of that session succeeds.
- Writes that fail are logged and swallowed. A failed write does not fail the
  turn, at the cost of losing that increment if the process dies before the
  next successful write.
"""

from __future__ import annotations

from typing import Optional

from pydantic import ValidationError

from ..core.logging_config import get_logger
from ..errors import StateDeserializationError
from ..schemas.domain import AgentLoopState, SessionSeed
from ..state.manager import AgentLoopStateManager
from .interfaces import KeyValueStore

logger = get_logger(__name__)

DEFAULT_KEY_PREFIX = "agent-loop"
DEFAULT_TTL_SECONDS = 3600


class KeyValueStateRepository:
    """Persist agent loop state as JSON in a shared key-value store."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        prefix: str = DEFAULT_KEY_PREFIX,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
    ) -> None:
        self._store = store
        self._prefix = prefix
        self._ttl_seconds = ttl_seconds
        self._unread: set[str] = set()

    @property
    def store(self) -> KeyValueStore:
        return self._store

    def key_for(self, session_id: str) -> str:
        return f"{self._prefix}:{session_id}"

    def _decode(self, key: str, data: str) -> AgentLoopState:
        try:
            return AgentLoopState.model_validate_json(data)
        except ValidationError as e:
            raise StateDeserializationError(key, str(e)) from e

    async def _read(self, session_id: str) -> Optional[AgentLoopStateManager]:
        """Decode a session's entry; store errors propagate, unusable entries read as a miss."""
        key = self.key_for(session_id)
        data = await self._store.get(key)
        if not data:
            return None
        try:
            return AgentLoopStateManager(self._decode(key, data))
        except StateDeserializationError as e:
            logger.warning(str(e))
            return None

    async def load(self, session_id: str) -> Optional[AgentLoopStateManager]:
        """Read a session's state; returns None on a miss, an unusable entry or a store error."""
        try:
            return await self._read(session_id)
        except Exception as e:
            logger.error(f"Failed to get agent loop state for {session_id}: {e}")
            return None

    async def get_or_create(
        self, session_id: str, initial: Optional[SessionSeed] = None
    ) -> AgentLoopStateManager:
        try:
            manager = await self._read(session_id)
        except Exception as e:
            logger.error(
                f"Failed to get agent loop state for {session_id}: {e}; "
                "using a fresh state that is not saved until the store can be read"
            )
            self._unread.add(session_id)
            return AgentLoopStateManager.create(session_id, initial)

        self._unread.discard(session_id)
        if manager is not None:
            logger.debug(f"Restored agent loop state for session {session_id} (turn {manager.get_state().turn_count})")
            return manager

        manager = AgentLoopStateManager.create(session_id, initial)
        await self.save(manager)
        logger.debug(f"Created agent loop state for session {session_id}")
        return manager

    async def save(self, manager: AgentLoopStateManager) -> None:
        if manager.session_id in self._unread:
            logger.warning(f"Not saving agent loop state for {manager.session_id}: its stored state could not be read")
            return
        try:
            await self._store.set(self.key_for(manager.session_id), manager.to_json(), self._ttl_seconds)
        except Exception as e:
            logger.error(f"Failed to save agent loop state for {manager.session_id}: {e}")

    async def delete(self, session_id: str) -> None:
        self._unread.discard(session_id)
        try:
            await self._store.delete(self.key_for(session_id))
        except Exception as e:
            logger.error(f"Failed to delete agent loop state for {session_id}: {e}")

    async def list_states(self) -> list[AgentLoopState]:
        """Decode every stored session; entries that vanish or fail to decode are skipped."""
        states: list[AgentLoopState] = []
        for key in await self._store.keys(f"{self._prefix}:*"):
            data = await self._store.get(key)
            if not data:
                continue
            try:
                states.append(self._decode(key, data))
            except StateDeserializationError as e:
                logger.warning(str(e))
        return states
