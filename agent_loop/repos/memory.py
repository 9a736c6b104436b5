"""Single-process session registry.

``InMemoryStateRepository`` keeps one live ``AgentLoopStateManager`` per
session id. State is lost on restart and invisible to other processes, so it
only fits deployments where exactly one process serves every session.
"""

from __future__ import annotations

import asyncio
from typing import Dict, Optional

from ..core.logging_config import get_logger
from ..schemas.domain import AgentLoopState, SessionSeed
from ..state.manager import AgentLoopStateManager

logger = get_logger(__name__)


class InMemoryStateRepository:
    """Registry of live state managers keyed by session id."""

    def __init__(self) -> None:
        self._managers: Dict[str, AgentLoopStateManager] = {}
        self._lock = asyncio.Lock()

    async def get_or_create(
        self, session_id: str, initial: Optional[SessionSeed] = None
    ) -> AgentLoopStateManager:
        async with self._lock:
            manager = self._managers.get(session_id)
            if manager is None:
                manager = AgentLoopStateManager.create(session_id, initial)
                self._managers[session_id] = manager
                logger.debug(f"Created in-memory agent loop state for session {session_id}")
            return manager

    async def save(self, manager: AgentLoopStateManager) -> None:
        # The registry holds the live manager; re-register it in case it was deleted meanwhile.
        async with self._lock:
            self._managers[manager.session_id] = manager

    async def delete(self, session_id: str) -> None:
        async with self._lock:
            self._managers.pop(session_id, None)

    async def list_states(self) -> list[AgentLoopState]:
        async with self._lock:
            return [m.get_state() for m in self._managers.values()]

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._managers

    def __len__(self) -> int:
        return len(self._managers)
