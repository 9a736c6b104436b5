from __future__ import annotations

"""Session state manager.

``AgentLoopStateManager`` is the only code path allowed to mutate an
``AgentLoopState``. It enforces the invariants of the state model:

- reasoning steps, observations and reflections are append-only;
- a tool execution moves ``pending -> running -> success|error`` and a
  terminal status is never overwritten;
- ``duration`` of a completed execution is ``completed_at - started_at`` and
  never negative;
- reflection confidence is clamped to ``[0, 1]``.

The manager performs no I/O. Persistence is layered on top of it by
``agent_loop.repos.persisting.PersistingStateManager``.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..core.logging_config import get_logger
from ..schemas.domain import (
    TERMINAL_TOOL_STATUSES,
    AgentLoopPhase,
    AgentLoopState,
    AgentLoopSummary,
    ConversationMessage,
    Observation,
    ObservationType,
    ReasoningStep,
    Reflection,
    SessionSeed,
    ToolExecution,
    ToolExecutionStatus,
)

logger = get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AgentLoopStateManager:
    """Mutate and query one session's reasoning state."""

    def __init__(self, state: AgentLoopState) -> None:
        self._state = state

    @classmethod
    def create(cls, session_id: str, seed: Optional[SessionSeed] = None) -> "AgentLoopStateManager":
        """Build a manager around a brand new, inactive session state."""
        seed = seed or SessionSeed()
        state = AgentLoopState(
            session_id=session_id,
            project_id=seed.project_id,
            user_id=seed.user_id,
            project_files=dict(seed.project_files),
            conversation_history=[m.model_copy() for m in seed.conversation_history],
        )
        return cls(state)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def session_id(self) -> str:
        return self._state.session_id

    @property
    def current_phase(self) -> AgentLoopPhase:
        return self._state.current_phase

    @property
    def is_active(self) -> bool:
        return self._state.is_active

    def get_state(self) -> AgentLoopState:
        """Return a deep copy of the state; mutating it does not affect the session."""
        return self._state.model_copy(deep=True)

    def _touch(self) -> None:
        self._state.updated_at = _utc_now()

    # ------------------------------------------------------------------
    # Phase management
    # ------------------------------------------------------------------

    def set_phase(self, phase: AgentLoopPhase) -> None:
        self._state.current_phase = AgentLoopPhase(phase)
        self._touch()

    def start_loop(self) -> None:
        self._state.is_active = True
        self._state.current_phase = AgentLoopPhase.think
        self._state.turn_count += 1
        self._touch()

    def stop_loop(self) -> None:
        self._state.is_active = False
        self._touch()

    # ------------------------------------------------------------------
    # Reasoning steps
    # ------------------------------------------------------------------

    def add_reasoning_step(
        self, phase: AgentLoopPhase, content: str, metadata: Optional[Dict[str, Any]] = None
    ) -> ReasoningStep:
        step = ReasoningStep(phase=AgentLoopPhase(phase), content=content, metadata=metadata)
        self._state.reasoning_steps.append(step)
        self._touch()
        return step

    def get_reasoning_steps(self, phase: Optional[AgentLoopPhase] = None) -> List[ReasoningStep]:
        if phase is not None:
            return [s for s in self._state.reasoning_steps if s.phase == phase]
        return list(self._state.reasoning_steps)

    def get_latest_reasoning_step(self, phase: Optional[AgentLoopPhase] = None) -> Optional[ReasoningStep]:
        steps = self.get_reasoning_steps(phase)
        return steps[-1] if steps else None

    # ------------------------------------------------------------------
    # Tool execution tracking
    # ------------------------------------------------------------------

    def _warn_unknown_dependencies(self, dependencies: Optional[List[str]]) -> None:
        # Dependency ids are accepted as-is; unknown ones only make a tool never ready.
        if not dependencies:
            return
        known = {e.id for e in self._state.tool_executions}
        unknown = [d for d in dependencies if d not in known]
        if unknown:
            logger.warning(f"Session {self.session_id}: tool dependencies reference unknown executions {unknown}")

    def track_tool_start(
        self, name: str, args: Dict[str, Any], dependencies: Optional[List[str]] = None
    ) -> ToolExecution:
        """Record a tool execution that has just started running."""
        self._warn_unknown_dependencies(dependencies)
        execution = ToolExecution(
            name=name,
            args=dict(args),
            dependencies=list(dependencies) if dependencies is not None else None,
            status=ToolExecutionStatus.running,
        )
        self._state.tool_executions.append(execution)
        self._touch()
        return execution

    def queue_tool(
        self, name: str, args: Dict[str, Any], dependencies: Optional[List[str]] = None
    ) -> ToolExecution:
        """Record a planned tool execution that waits for its dependencies."""
        self._warn_unknown_dependencies(dependencies)
        execution = ToolExecution(
            name=name,
            args=dict(args),
            dependencies=list(dependencies) if dependencies is not None else None,
            status=ToolExecutionStatus.pending,
        )
        self._state.tool_executions.append(execution)
        self._state.pending_tools.append(execution.id)
        self._touch()
        return execution

    def mark_tool_running(self, execution_id: str) -> Optional[ToolExecution]:
        """Move a pending execution to running. Unknown or non-pending ids are ignored."""
        execution = self.get_tool_execution(execution_id)
        if execution is None or execution.status != ToolExecutionStatus.pending:
            logger.debug(f"Session {self.session_id}: cannot start tool {execution_id}, not pending")
            return None
        execution.status = ToolExecutionStatus.running
        execution.started_at = _utc_now()
        self._state.pending_tools = [i for i in self._state.pending_tools if i != execution_id]
        self._touch()
        return execution

    def track_tool_complete(self, execution_id: str, result: Any = None, error: Optional[str] = None) -> None:
        """Record the outcome of a running tool execution.

        Completion callbacks for unknown executions, or for executions that
        already reached a terminal status, are logged and ignored.
        """
        execution = self.get_tool_execution(execution_id)
        if execution is None:
            logger.info(f"Session {self.session_id}: ignoring completion of unknown tool execution {execution_id}")
            return
        if execution.status in TERMINAL_TOOL_STATUSES:
            logger.info(
                f"Session {self.session_id}: ignoring duplicate completion of tool execution {execution_id} "
                f"(already {execution.status.value})"
            )
            return
        if execution.status != ToolExecutionStatus.running:
            logger.info(f"Session {self.session_id}: ignoring completion of tool execution {execution_id} that never started")
            return

        completed_at = _utc_now()
        execution.status = ToolExecutionStatus.error if error else ToolExecutionStatus.success
        execution.result = result
        execution.error = error
        execution.completed_at = completed_at
        execution.duration = max(0.0, (completed_at - execution.started_at).total_seconds())
        self._touch()

    def get_tool_executions(self, status: Optional[ToolExecutionStatus] = None) -> List[ToolExecution]:
        if status is not None:
            return [e for e in self._state.tool_executions if e.status == status]
        return list(self._state.tool_executions)

    def get_tool_execution(self, execution_id: str) -> Optional[ToolExecution]:
        for execution in self._state.tool_executions:
            if execution.id == execution_id:
                return execution
        return None

    def get_unobserved_tool_executions(self) -> List[ToolExecution]:
        """Tool executions whose outcome no observe phase has accounted for yet.

        Executions that were still pending or running at the end of an earlier
        turn stay here until a later turn observes their outcome.
        """
        return [e for e in self._state.tool_executions[self._state.observed_tool_count :] if not e.observed]

    def mark_tools_observed(self) -> None:
        """Mark finished executions as observed and advance the cursor past the observed prefix."""
        executions = self._state.tool_executions
        for execution in executions[self._state.observed_tool_count :]:
            if execution.status in TERMINAL_TOOL_STATUSES:
                execution.observed = True
        cursor = self._state.observed_tool_count
        while cursor < len(executions) and executions[cursor].observed:
            cursor += 1
        self._state.observed_tool_count = cursor
        self._touch()

    # ------------------------------------------------------------------
    # Tool dependency analysis
    # ------------------------------------------------------------------

    def analyze_dependencies(self) -> Dict[str, List[str]]:
        """Map each execution id to the ids it depends on (executions without dependencies are omitted)."""
        return {e.id: list(e.dependencies) for e in self._state.tool_executions if e.dependencies}

    def get_ready_tools(self) -> List[ToolExecution]:
        """Pending executions whose dependencies have all succeeded.

        This only reports executability; nothing is started.
        """
        succeeded = {e.id for e in self._state.tool_executions if e.status == ToolExecutionStatus.success}
        return [
            e
            for e in self._state.tool_executions
            if e.status == ToolExecutionStatus.pending and all(dep in succeeded for dep in e.dependencies or [])
        ]

    # ------------------------------------------------------------------
    # Observations and reflections
    # ------------------------------------------------------------------

    def add_observation(
        self,
        type: ObservationType,
        content: str,
        related_tool_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Observation:
        observation = Observation(
            type=ObservationType(type),
            content=content,
            related_tool_id=related_tool_id,
            metadata=metadata,
        )
        self._state.observations.append(observation)
        self._touch()
        return observation

    def get_observations(self, type: Optional[ObservationType] = None) -> List[Observation]:
        if type is not None:
            return [o for o in self._state.observations if o.type == type]
        return list(self._state.observations)

    def add_reflection(
        self,
        insight: str,
        learnings: List[str],
        suggested_actions: Optional[List[str]] = None,
        confidence: float = 0.5,
    ) -> Reflection:
        reflection = Reflection(
            insight=insight,
            learnings=list(learnings),
            suggested_actions=list(suggested_actions) if suggested_actions is not None else None,
            confidence=max(0.0, min(1.0, float(confidence))),
        )
        self._state.reflections.append(reflection)
        self._touch()
        return reflection

    def get_reflections(self) -> List[Reflection]:
        return list(self._state.reflections)

    def get_latest_reflection(self) -> Optional[Reflection]:
        return self._state.reflections[-1] if self._state.reflections else None

    # ------------------------------------------------------------------
    # Context
    # ------------------------------------------------------------------

    def update_conversation_history(self, messages: Iterable[Mapping[str, str] | ConversationMessage]) -> None:
        self._state.conversation_history = [ConversationMessage.model_validate(m) for m in messages]
        self._touch()

    def update_project_files(self, files: Mapping[str, str]) -> None:
        self._state.project_files = dict(files)
        self._touch()

    # ------------------------------------------------------------------
    # Reporting and serialization
    # ------------------------------------------------------------------

    def get_summary(self) -> AgentLoopSummary:
        executions = self._state.tool_executions
        return AgentLoopSummary(
            phase=self._state.current_phase,
            turn_count=self._state.turn_count,
            total_reasoning_steps=len(self._state.reasoning_steps),
            total_tool_executions=len(executions),
            successful_tools=sum(1 for e in executions if e.status == ToolExecutionStatus.success),
            failed_tools=sum(1 for e in executions if e.status == ToolExecutionStatus.error),
            total_observations=len(self._state.observations),
            total_reflections=len(self._state.reflections),
        )

    def to_json(self) -> str:
        return self._state.model_dump_json()

    @classmethod
    def from_json(cls, data: str | bytes) -> "AgentLoopStateManager":
        """Restore a manager from ``to_json`` output without touching ``updated_at``."""
        return cls(AgentLoopState.model_validate_json(data))
