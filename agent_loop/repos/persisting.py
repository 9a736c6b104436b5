from __future__ import annotations

"""Write-through proxy over ``AgentLoopStateManager``.

``PersistingStateManager`` exposes the manager's mutators as coroutines: each
one runs the in-memory mutation and then awaits ``repository.save``, which
re-serializes the whole state and refreshes its expiration. Queries are
forwarded untouched.

``save`` is expected to log and swallow its own failures (see
``AgentLoopStateRepository``), so a persistence hiccup never interrupts the
caller's control flow.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..schemas.domain import (
    AgentLoopPhase,
    AgentLoopState,
    AgentLoopSummary,
    ConversationMessage,
    Observation,
    ObservationType,
    ReasoningStep,
    Reflection,
    ToolExecution,
    ToolExecutionStatus,
)
from ..state.manager import AgentLoopStateManager
from .interfaces import AgentLoopStateRepository


class PersistingStateManager:
    """State manager whose every mutation is followed by a save."""

    def __init__(self, manager: AgentLoopStateManager, repository: AgentLoopStateRepository) -> None:
        self._manager = manager
        self._repository = repository

    @property
    def manager(self) -> AgentLoopStateManager:
        return self._manager

    @property
    def session_id(self) -> str:
        return self._manager.session_id

    async def save(self) -> None:
        await self._repository.save(self._manager)

    # ------------------------------------------------------------------
    # Mutators
    # ------------------------------------------------------------------

    async def set_phase(self, phase: AgentLoopPhase) -> None:
        self._manager.set_phase(phase)
        await self.save()

    async def start_loop(self) -> None:
        self._manager.start_loop()
        await self.save()

    async def stop_loop(self) -> None:
        self._manager.stop_loop()
        await self.save()

    async def add_reasoning_step(
        self, phase: AgentLoopPhase, content: str, metadata: Optional[Dict[str, Any]] = None
    ) -> ReasoningStep:
        step = self._manager.add_reasoning_step(phase, content, metadata)
        await self.save()
        return step

    async def track_tool_start(
        self, name: str, args: Dict[str, Any], dependencies: Optional[List[str]] = None
    ) -> ToolExecution:
        execution = self._manager.track_tool_start(name, args, dependencies)
        await self.save()
        return execution

    async def queue_tool(
        self, name: str, args: Dict[str, Any], dependencies: Optional[List[str]] = None
    ) -> ToolExecution:
        execution = self._manager.queue_tool(name, args, dependencies)
        await self.save()
        return execution

    async def mark_tool_running(self, execution_id: str) -> Optional[ToolExecution]:
        execution = self._manager.mark_tool_running(execution_id)
        if execution is not None:
            await self.save()
        return execution

    async def track_tool_complete(self, execution_id: str, result: Any = None, error: Optional[str] = None) -> None:
        self._manager.track_tool_complete(execution_id, result, error)
        await self.save()

    async def mark_tools_observed(self) -> None:
        self._manager.mark_tools_observed()
        await self.save()

    async def add_observation(
        self,
        type: ObservationType,
        content: str,
        related_tool_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Observation:
        observation = self._manager.add_observation(type, content, related_tool_id, metadata)
        await self.save()
        return observation

    async def add_reflection(
        self,
        insight: str,
        learnings: List[str],
        suggested_actions: Optional[List[str]] = None,
        confidence: float = 0.5,
    ) -> Reflection:
        reflection = self._manager.add_reflection(insight, learnings, suggested_actions, confidence)
        await self.save()
        return reflection

    async def update_conversation_history(self, messages: Iterable[Mapping[str, str] | ConversationMessage]) -> None:
        self._manager.update_conversation_history(messages)
        await self.save()

    async def update_project_files(self, files: Mapping[str, str]) -> None:
        self._manager.update_project_files(files)
        await self.save()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_state(self) -> AgentLoopState:
        return self._manager.get_state()

    def get_summary(self) -> AgentLoopSummary:
        return self._manager.get_summary()

    def get_tool_executions(self, status: Optional[ToolExecutionStatus] = None) -> List[ToolExecution]:
        return self._manager.get_tool_executions(status)

    def get_unobserved_tool_executions(self) -> List[ToolExecution]:
        return self._manager.get_unobserved_tool_executions()

    def get_ready_tools(self) -> List[ToolExecution]:
        return self._manager.get_ready_tools()
