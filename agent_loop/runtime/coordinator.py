from __future__ import annotations

"""LangGraph loop coordinator.

``AgentLoopCoordinator`` drives one session's Think -> Act -> Observe ->
Reflect cycle, one turn at a time.

Turn model
----------

- The turn holds the session's lock (``SessionLockProvider``) from start to
  finish, so two turns of one session never interleave.
- Inside the lock, every turn reloads (or creates) the session state through
  the repository, so it builds on what other coordinators or processes wrote
  since. The state is wrapped in a ``PersistingStateManager``: every mutation
  is written back.
- Tracking and context updates made outside a turn take the same lock and
  reload the state before writing.
- The four phases are nodes of a compiled LangGraph ``StateGraph`` wired
  linearly ``think -> act -> observe -> reflect -> END``.

Phases
------

- think: the ``TaskClassifier`` turns the user message into plan steps,
  each recorded as a reasoning step.
- act: the optional ``ActHandler`` drives the LLM and reports tool calls
  through the tracking API (``track_tool_execution`` /
  ``update_tool_execution`` or ``on_tool_call_start`` /
  ``on_tool_call_finish``).
- observe: the executions tracked since the previous observe phase are
  summarized into success / error / no-tools observations.
- reflect: a ``ReflectionPolicy`` scores the turn and decides whether the
  caller should run another turn.

Failures
--------

Tool failures are data. Any exception raised while running the phases is
caught at the turn boundary, recorded as an ``error`` observation and turned
into ``should_continue=False``. The loop is stopped whatever happens.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional

from langgraph.graph import END, StateGraph

from ..core.logging_config import get_logger
from ..errors import AgentLoopNotInitializedError, LockAcquisitionError
from ..repos import PersistingStateManager
from ..schemas.domain import (
    AgentLoopPhase,
    AgentLoopState,
    AgentLoopSummary,
    ConversationMessage,
    ObservationType,
    SessionSeed,
    ToolExecution,
    ToolExecutionStatus,
)
from .events import EventSink
from .models import CoordinatorDeps, TurnResult, _TurnState
from .tool_calls import normalize_tool_call, normalize_tool_result

logger = get_logger(__name__)

ACT_STEP = "Executing planned tools and generating response..."
NO_TOOLS_OBSERVATION = "No tools were executed - responded with text only"
RETRY_ACTION = "Retry failed operations with adjusted approach"


class AgentLoopCoordinator:
    """Run reasoning turns for one chat session.

    The coordinator is cheap to build: nothing is loaded until the first turn
    or the first call to ``ensure_initialized``. Queries such as ``get_state``
    read the copy loaded by the latest turn or update.
    """

    def __init__(
        self,
        session_id: str,
        *,
        seed: Optional[SessionSeed] = None,
        event_sink: Optional[EventSink] = None,
        deps: Optional[CoordinatorDeps] = None,
        default_message: str = "",
    ) -> None:
        """
        Initialize the AgentLoopCoordinator.

        Args:
            session_id: The chat session this coordinator works for.
            seed: Initial project/user context, used only when the session has no state yet.
            event_sink: Optional receiver of real-time progress events.
            deps: Collaborators (repository, locks, classifier, reflection policy, act handler).
                Defaults to the process-wide bundle of ``agent_loop.factory.get_default_deps``.
            default_message: Message used by ``execute_turn`` when none is given.
        """
        if deps is None:
            from ..factory import get_default_deps

            deps = get_default_deps()
        self._session_id = session_id
        self._seed = seed
        self._sink = event_sink
        self._deps = deps
        self._default_message = default_message
        self._state: Optional[PersistingStateManager] = None
        self._init_lock = asyncio.Lock()
        self._in_turn = False
        self._call_ids: Dict[str, str] = {}
        self._graph = self._build_graph()

    def _build_graph(self):
        """Build and compile the LangGraph state machine."""
        g: StateGraph = StateGraph(_TurnState)
        g.add_node("think", self._node_think)
        g.add_node("act", self._node_act)
        g.add_node("observe", self._node_observe)
        g.add_node("reflect", self._node_reflect)

        g.set_entry_point("think")
        g.add_edge("think", "act")
        g.add_edge("act", "observe")
        g.add_edge("observe", "reflect")
        g.add_edge("reflect", END)
        return g.compile()

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def deps(self) -> CoordinatorDeps:
        return self._deps

    @property
    def is_initialized(self) -> bool:
        return self._state is not None

    async def _load_state(self) -> PersistingStateManager:
        manager = await self._deps.repository.get_or_create(self._session_id, self._seed)
        self._state = PersistingStateManager(manager, self._deps.repository)
        logger.debug(f"Session {self._session_id}: agent loop state ready (turn {manager.get_summary().turn_count})")
        return self._state

    async def ensure_initialized(self) -> PersistingStateManager:
        """Load or create the session state if nothing is loaded yet; concurrent callers share the result."""
        async with self._init_lock:
            if self._state is None:
                await self._load_state()
            return self._state

    async def refresh(self) -> PersistingStateManager:
        """Reload the session state from the repository, replacing the loaded copy.

        Callers must hold the session's lock for the reloaded copy to stay current.
        """
        async with self._init_lock:
            return await self._load_state()

    @asynccontextmanager
    async def _locked_state(self) -> AsyncIterator[PersistingStateManager]:
        """State to mutate: the turn's copy during a turn, otherwise a fresh copy under the session lock."""
        if self._in_turn:
            yield self._require_state()
            return
        async with self._deps.locks.hold(self._session_id):
            yield await self.refresh()

    def _require_state(self) -> PersistingStateManager:
        if self._state is None:
            raise AgentLoopNotInitializedError(self._session_id)
        return self._state

    # ------------------------------------------------------------------
    # Turn execution
    # ------------------------------------------------------------------

    async def execute_turn(self, user_message: Optional[str] = None) -> TurnResult:
        """Run one Think -> Act -> Observe -> Reflect cycle.

        Never raises: lock timeouts and phase failures end the turn with
        ``should_continue=False``.
        """
        message = user_message if user_message is not None else self._default_message
        try:
            async with self._deps.locks.hold(self._session_id):
                self._in_turn = True
                try:
                    return await self._run_turn(message)
                finally:
                    self._in_turn = False
        except LockAcquisitionError as e:
            logger.error(f"Session {self._session_id}: turn skipped - {e}")
            return TurnResult(should_continue=False)

    async def _run_turn(self, user_message: str) -> TurnResult:
        try:
            state = await self.refresh()
        except Exception as e:
            logger.error(f"Session {self._session_id}: cannot load agent loop state: {e}")
            return TurnResult(should_continue=False)

        await state.start_loop()
        logger.info(f"Session {self._session_id}: turn {state.get_summary().turn_count} started")
        try:
            turn: _TurnState = {
                "user_message": user_message,
                "observations": [],
                "should_continue": False,
                "next_action": None,
            }
            final = await self._graph.ainvoke(turn)
            return TurnResult(should_continue=bool(final["should_continue"]), next_action=final.get("next_action"))
        except Exception as e:
            logger.exception(f"Session {self._session_id}: agent loop error: {e}")
            content = str(e) or type(e).__name__
            await state.add_observation(ObservationType.error, content)
            await self._emit("write_observation", ObservationType.error, content)
            return TurnResult(should_continue=False)
        finally:
            await state.stop_loop()
            logger.info(f"Session {self._session_id}: turn finished")

    async def _emit(self, method: str, *args: Any) -> None:
        if self._sink is None:
            return
        try:
            await getattr(self._sink, method)(*args)
        except Exception as e:
            logger.warning(f"Session {self._session_id}: event sink {method} failed: {e}")

    async def _enter_phase(self, phase: AgentLoopPhase) -> PersistingStateManager:
        state = self._require_state()
        await state.set_phase(phase)
        await self._emit("write_phase", phase)
        logger.info(f"Session {self._session_id}: {phase.value.upper()}")
        return state

    async def _record_reasoning(self, phase: AgentLoopPhase, content: str) -> None:
        await self._require_state().add_reasoning_step(phase, content)
        await self._emit("write_reasoning", phase, content)
        logger.debug(f"Session {self._session_id}: [{phase.value}] {content}")

    # ------------------------------------------------------------------
    # Graph nodes
    # ------------------------------------------------------------------

    async def _node_think(self, turn: _TurnState) -> _TurnState:
        await self._enter_phase(AgentLoopPhase.think)
        steps = await self._deps.classifier.classify(turn["user_message"])
        for step in steps:
            await self._record_reasoning(AgentLoopPhase.think, step)
        return turn

    async def _node_act(self, turn: _TurnState) -> _TurnState:
        await self._enter_phase(AgentLoopPhase.act)
        await self._record_reasoning(AgentLoopPhase.act, ACT_STEP)
        if self._deps.act_handler is not None:
            await self._deps.act_handler(self, turn["user_message"])
        return turn

    async def _node_observe(self, turn: _TurnState) -> _TurnState:
        state = await self._enter_phase(AgentLoopPhase.observe)
        executions = state.get_unobserved_tool_executions()
        succeeded = [e for e in executions if e.status == ToolExecutionStatus.success]
        failed = [e for e in executions if e.status == ToolExecutionStatus.error]

        pending: List[tuple[ObservationType, str]] = []
        if succeeded:
            names = ", ".join(e.name for e in succeeded)
            pending.append((ObservationType.success, f"Successfully executed {len(succeeded)} tool(s): {names}"))
        if failed:
            details = ", ".join(f"{e.name} ({e.error})" for e in failed)
            pending.append((ObservationType.error, f"{len(failed)} tool(s) failed: {details}"))
        if not executions:
            pending.append((ObservationType.tool_result, NO_TOOLS_OBSERVATION))

        recorded: List[str] = []
        for obs_type, content in pending:
            observation = await state.add_observation(obs_type, content)
            await self._emit("write_observation", obs_type, content)
            recorded.append(observation.id)
        for _, content in pending:
            await self._record_reasoning(AgentLoopPhase.observe, content)

        turn["observations"] = recorded
        return turn

    async def _node_reflect(self, turn: _TurnState) -> _TurnState:
        state = await self._enter_phase(AgentLoopPhase.reflect)
        policy = self._deps.reflection
        executions = state.get_unobserved_tool_executions()
        has_errors = any(e.status == ToolExecutionStatus.error for e in executions)
        has_success = any(e.status == ToolExecutionStatus.success for e in executions)

        learnings: List[str] = []
        confidence = policy.default_confidence
        if has_success and not has_errors:
            learnings = ["All tools executed successfully", "Task appears to be completed"]
            confidence = policy.success_confidence
        elif has_errors:
            learnings = ["Some tools encountered errors", "May need to retry or adjust approach"]
            confidence = policy.error_confidence
        elif not executions:
            learnings = ["No tools were needed for this response", "Provided text-only answer"]
            confidence = policy.no_tools_confidence

        if has_errors:
            insight = "Task partially completed with some errors"
        elif has_success:
            insight = "Task completed successfully"
        else:
            insight = "Provided informational response"

        suggested: Optional[List[str]] = None
        if has_errors:
            suggested = ["Review error messages and adjust approach", "Consider alternative tools or methods"]

        reflection = await state.add_reflection(insight, learnings, suggested, confidence)
        await self._emit("write_reflection", insight, learnings, suggested, reflection.confidence)
        logger.info(f"Session {self._session_id}: {insight} (confidence: {reflection.confidence:.0%})")

        should_continue = has_errors and reflection.confidence < policy.continue_below
        await state.mark_tools_observed()

        turn["should_continue"] = should_continue
        turn["next_action"] = RETRY_ACTION if should_continue else None
        return turn

    # ------------------------------------------------------------------
    # Tool tracking
    # ------------------------------------------------------------------

    async def track_tool_execution(
        self, name: str, args: Dict[str, Any], dependencies: Optional[List[str]] = None
    ) -> str:
        """Record a tool call that just started and return its execution id."""
        async with self._locked_state() as state:
            execution = await state.track_tool_start(name, args, dependencies)
        logger.debug(f"Session {self._session_id}: tool {name} started ({execution.id})")
        return execution.id

    async def update_tool_execution(self, execution_id: str, result: Any = None, error: Optional[str] = None) -> None:
        """Record the outcome of a tracked tool call.

        Outcomes may arrive after the turn that started the call; they are then
        observed by the next turn.
        """
        async with self._locked_state() as state:
            await state.track_tool_complete(execution_id, result, error)

    async def on_tool_call_start(self, raw: Any) -> str:
        """Track a tool call reported by the LLM layer in any supported shape."""
        call = normalize_tool_call(raw)
        execution_id = await self.track_tool_execution(call.name, call.args, call.dependencies)
        if call.call_id:
            self._call_ids[call.call_id] = execution_id
        return execution_id

    async def on_tool_call_finish(self, raw: Any) -> Optional[str]:
        """Complete the execution matching a tool result; unknown call ids are ignored."""
        outcome = normalize_tool_result(raw)
        execution_id = self._call_ids.pop(outcome.call_id, None) if outcome.call_id else None
        if execution_id is None:
            logger.info(f"Session {self._session_id}: ignoring result for unknown tool call {outcome.call_id}")
            return None
        await self.update_tool_execution(execution_id, outcome.result, outcome.error)
        return execution_id

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    def get_state(self) -> AgentLoopState:
        return self._require_state().get_state()

    def get_summary(self) -> AgentLoopSummary:
        return self._require_state().get_summary()

    def get_tool_executions(self, status: Optional[ToolExecutionStatus] = None) -> List[ToolExecution]:
        return self._require_state().get_tool_executions(status)

    async def update_conversation_history(self, messages: List[Mapping[str, str] | ConversationMessage]) -> None:
        async with self._locked_state() as state:
            await state.update_conversation_history(messages)

    async def update_project_files(self, files: Mapping[str, str]) -> None:
        async with self._locked_state() as state:
            await state.update_project_files(files)
