from __future__ import annotations

"""Coordinator dependency bundle and LangGraph state types.

- ``CoordinatorDeps`` collects the collaborators a coordinator needs:
  state repository, per-session locks, task classifier, reflection policy
  and the optional act-phase handler.
- ``_TurnState`` is the mutable state passed between LangGraph nodes during
  one turn.
- ``TurnResult`` is what ``execute_turn`` hands back to the caller.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional, Protocol, Required, TypedDict

from ..core.config import ReflectionPolicy
from ..locks import LocalSessionLocks, SessionLockProvider
from ..planning import KeywordTaskClassifier, TaskClassifier
from ..repos import AgentLoopStateRepository, InMemoryStateRepository
from ..schemas.base import BaseSchema

if TYPE_CHECKING:
    from .coordinator import AgentLoopCoordinator


class ActHandler(Protocol):
    """Act-phase collaborator.

    Drives the LLM for the turn and reports each tool call back through the
    coordinator's tracking API (``track_tool_execution`` /
    ``update_tool_execution`` or ``on_tool_call_start`` /
    ``on_tool_call_finish``).
    """

    async def __call__(self, coordinator: "AgentLoopCoordinator", user_message: str) -> None: ...


@dataclass(frozen=True)
class CoordinatorDeps:
    """Dependency bundle for ``AgentLoopCoordinator``.

    Every field has an in-process default, so a bare ``CoordinatorDeps()`` is
    enough for a single-process deployment or a test as long as every
    coordinator of a session receives that same instance. Coordinators built
    without ``deps`` share ``agent_loop.factory.get_default_deps()``.
    """

    repository: AgentLoopStateRepository = field(default_factory=InMemoryStateRepository)
    locks: SessionLockProvider = field(default_factory=LocalSessionLocks)
    classifier: TaskClassifier = field(default_factory=KeywordTaskClassifier)
    reflection: ReflectionPolicy = field(default_factory=ReflectionPolicy)
    act_handler: Optional[ActHandler] = None


class _TurnState(TypedDict):
    """Mutable LangGraph state for a single turn.

    - ``user_message``: the message being handled.
    - ``observations``: ids of the observations recorded by the observe node.
    - ``should_continue`` / ``next_action``: decided by the reflect node.
    """

    user_message: Required[str]
    observations: Required[List[str]]
    should_continue: Required[bool]
    next_action: Required[Optional[str]]


class TurnResult(BaseSchema):
    """Outcome of one turn."""

    should_continue: bool = False
    next_action: Optional[str] = None
