from __future__ import annotations

"""Public entry points of the agent loop.

These helpers are what a chat request handler calls:

- ``create_agent_loop`` builds a coordinator for one request;
- ``delete_agent_loop_state`` drops a session's state (chat deleted);
- ``cleanup_inactive_agent_loops`` runs one sweep on demand;
- ``get_agent_loop_summary`` reports a session's counters for display.

Each helper falls back to the process-wide dependency bundle from
``agent_loop.factory`` when no repository or deps are passed.
"""

from typing import Any, Dict, Iterable, Mapping, Optional

from . import sweeper
from .core.config import settings
from .core.logging_config import get_logger
from .factory import get_default_deps
from .repos import AgentLoopStateRepository
from .runtime import AgentLoopCoordinator, CoordinatorDeps, EventSink
from .schemas.domain import AgentLoopSummary, ConversationMessage, SessionSeed

logger = get_logger(__name__)


def create_agent_loop(
    session_id: str,
    project_id: str,
    user_id: str,
    user_message: str,
    project_files: Optional[Dict[str, str]] = None,
    conversation_history: Optional[Iterable[Mapping[str, Any] | ConversationMessage]] = None,
    event_sink: Optional[EventSink] = None,
    *,
    deps: Optional[CoordinatorDeps] = None,
) -> AgentLoopCoordinator:
    """Create a coordinator for a chat session.

    The state itself is loaded (or created from the given project context) on
    the first turn. ``user_message`` becomes the default message of
    ``execute_turn``.
    """
    seed = SessionSeed(
        project_id=project_id,
        user_id=user_id,
        project_files=dict(project_files or {}),
        conversation_history=[ConversationMessage.model_validate(m) for m in conversation_history or []],
    )
    return AgentLoopCoordinator(
        session_id,
        seed=seed,
        event_sink=event_sink,
        deps=deps,
        default_message=user_message,
    )


async def delete_agent_loop_state(
    session_id: str, *, repository: Optional[AgentLoopStateRepository] = None
) -> None:
    """Delete a session's state (e.g. when the chat is deleted)."""
    repo = repository or get_default_deps().repository
    await repo.delete(session_id)
    logger.debug(f"Deleted agent loop state for session {session_id}")


async def cleanup_inactive_agent_loops(
    *,
    repository: Optional[AgentLoopStateRepository] = None,
    staleness_seconds: Optional[int] = None,
) -> int:
    """Remove inactive sessions older than the staleness window; returns how many were removed."""
    repo = repository or get_default_deps().repository
    return await sweeper.cleanup_inactive_agent_loops(repo, staleness_seconds or settings.staleness_seconds)


async def get_agent_loop_summary(
    session_id: str, *, repository: Optional[AgentLoopStateRepository] = None
) -> AgentLoopSummary:
    """Summary counters of a session, creating an empty state if none exists."""
    repo = repository or get_default_deps().repository
    manager = await repo.get_or_create(session_id)
    return manager.get_summary()
