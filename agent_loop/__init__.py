"""Agent loop.

This package runs an autonomous coding agent's per-session reasoning cycle:
every user turn goes through Think -> Act -> Observe -> Reflect, and the
accumulated reasoning state survives across turns.

High-level architecture
-----------------------

- ``agent_loop.schemas``: pydantic models of a session's state (reasoning
  steps, tool executions, observations, reflections).
- ``agent_loop.state``: ``AgentLoopStateManager``, the only code allowed to
  mutate that state.
- ``agent_loop.repos``: persistence strategies (in-process registry or a
  shared key-value store such as Redis) and the write-through proxy.
- ``agent_loop.runtime``: the LangGraph coordinator, event sink and tool-call
  normalization.
- ``agent_loop.planning``: think-phase task classifiers.
- ``agent_loop.locks``: per-session turn serialization.
- ``agent_loop.sweeper``: periodic removal of abandoned sessions.

Typical workflow
----------------

1. ``create_agent_loop(...)`` for the incoming chat request.
2. ``await coordinator.execute_turn()``; the act-phase handler reports tool
   calls through ``on_tool_call_start`` / ``on_tool_call_finish``.
3. Run another turn while ``TurnResult.should_continue`` is true.
"""

from .runtime import AgentLoopCoordinator, CoordinatorDeps, QueueEventSink, TurnResult
from .service import (
    cleanup_inactive_agent_loops,
    create_agent_loop,
    delete_agent_loop_state,
    get_agent_loop_summary,
)
from .state import AgentLoopStateManager
from .sweeper import CleanupSweeper

__all__ = [
    "AgentLoopCoordinator",
    "AgentLoopStateManager",
    "CleanupSweeper",
    "CoordinatorDeps",
    "QueueEventSink",
    "TurnResult",
    "cleanup_inactive_agent_loops",
    "create_agent_loop",
    "delete_agent_loop_state",
    "get_agent_loop_summary",
]
