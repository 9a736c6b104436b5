from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, List, Optional, Tuple

import pytest

from agent_loop import factory
from agent_loop.core.config import ReflectionPolicy
from agent_loop.errors import AgentLoopNotInitializedError, LockAcquisitionError
from agent_loop.repos import InMemoryKeyValueStore, InMemoryStateRepository, KeyValueStateRepository
from agent_loop.runtime import AgentLoopCoordinator, CoordinatorDeps
from agent_loop.runtime.coordinator import NO_TOOLS_OBSERVATION, RETRY_ACTION
from agent_loop.schemas.domain import AgentLoopPhase, ObservationType, SessionSeed, ToolExecutionStatus
from agent_loop.state.manager import AgentLoopStateManager


class _RecordingSink:
    def __init__(self) -> None:
        self.events: List[Tuple[str, Any]] = []

    async def write_phase(self, phase: AgentLoopPhase) -> None:
        self.events.append(("phase", phase))

    async def write_reasoning(self, phase: AgentLoopPhase, content: str) -> None:
        self.events.append(("reasoning", (phase, content)))

    async def write_observation(
        self, type: ObservationType, content: str, related_tool_id: Optional[str] = None
    ) -> None:
        self.events.append(("observation", (type, content)))

    async def write_reflection(
        self,
        insight: str,
        learnings: List[str],
        suggested_actions: Optional[List[str]] = None,
        confidence: float = 0.5,
    ) -> None:
        self.events.append(("reflection", (insight, confidence, suggested_actions)))

    def phases(self) -> List[AgentLoopPhase]:
        return [payload for kind, payload in self.events if kind == "phase"]


class _BrokenSink(_RecordingSink):
    async def write_phase(self, phase: AgentLoopPhase) -> None:
        raise RuntimeError("client disconnected")


class _ScriptedAct:
    """Act handler that runs a fixed list of tool calls: (name, error or None)."""

    def __init__(self, calls: List[Tuple[str, Optional[str]]]) -> None:
        self.calls = calls
        self.active_during_act: List[bool] = []
        self.messages: List[str] = []

    async def __call__(self, coordinator: AgentLoopCoordinator, user_message: str) -> None:
        self.messages.append(user_message)
        self.active_during_act.append(coordinator.get_state().is_active)
        for name, error in self.calls:
            execution_id = await coordinator.track_tool_execution(name, {"n": name})
            await coordinator.update_tool_execution(execution_id, result=None if error else "ok", error=error)


class _FailingAct:
    async def __call__(self, coordinator: AgentLoopCoordinator, user_message: str) -> None:
        raise RuntimeError("model provider unavailable")


class _TimeoutLocks:
    @asynccontextmanager
    async def hold(self, session_id: str) -> AsyncIterator[None]:
        raise LockAcquisitionError(f"agent-loop-lock:{session_id}", 10)
        yield  # pragma: no cover


def _coordinator(
    act: Any = None,
    sink: Any = None,
    deps: Optional[CoordinatorDeps] = None,
    session_id: str = "s1",
) -> AgentLoopCoordinator:
    deps = deps or CoordinatorDeps(repository=InMemoryStateRepository(), act_handler=act)
    return AgentLoopCoordinator(
        session_id,
        seed=SessionSeed(project_id="p1", user_id="u1"),
        event_sink=sink,
        deps=deps,
        default_message="create a settings page",
    )


@pytest.mark.asyncio
async def test_phases_run_in_order_and_loop_stops() -> None:
    sink = _RecordingSink()
    act = _ScriptedAct([])
    coordinator = _coordinator(act=act, sink=sink)

    await coordinator.execute_turn()

    assert sink.phases() == [
        AgentLoopPhase.think,
        AgentLoopPhase.act,
        AgentLoopPhase.observe,
        AgentLoopPhase.reflect,
    ]
    assert act.active_during_act == [True]
    assert act.messages == ["create a settings page"]
    state = coordinator.get_state()
    assert state.is_active is False
    assert state.current_phase == AgentLoopPhase.reflect
    assert state.turn_count == 1


@pytest.mark.asyncio
async def test_think_records_classifier_steps() -> None:
    sink = _RecordingSink()
    coordinator = _coordinator(sink=sink)

    await coordinator.execute_turn("update the footer")

    think = [s.content for s in coordinator.get_state().reasoning_steps if s.phase == AgentLoopPhase.think]
    assert think[0] == "User wants to modify existing code"
    assert ("reasoning", (AgentLoopPhase.think, think[0])) in sink.events
    act = [s.content for s in coordinator.get_state().reasoning_steps if s.phase == AgentLoopPhase.act]
    assert act == ["Executing planned tools and generating response..."]


@pytest.mark.asyncio
async def test_all_tools_succeed() -> None:
    coordinator = _coordinator(act=_ScriptedAct([("readFile", None), ("generateFiles", None)]))

    result = await coordinator.execute_turn()

    assert result.should_continue is False
    assert result.next_action is None
    state = coordinator.get_state()
    success = [o for o in state.observations if o.type == ObservationType.success]
    assert [o.content for o in success] == ["Successfully executed 2 tool(s): readFile, generateFiles"]
    reflection = state.reflections[-1]
    assert reflection.confidence >= 0.8
    assert reflection.insight == "Task completed successfully"
    assert reflection.learnings == ["All tools executed successfully", "Task appears to be completed"]


@pytest.mark.asyncio
async def test_tool_error_asks_for_another_turn() -> None:
    sink = _RecordingSink()
    coordinator = _coordinator(act=_ScriptedAct([("readFile", None), ("runCommand", "exit code 1")]), sink=sink)

    result = await coordinator.execute_turn()

    assert result.should_continue is True
    assert result.next_action == RETRY_ACTION
    state = coordinator.get_state()
    errors = [o.content for o in state.observations if o.type == ObservationType.error]
    assert errors == ["1 tool(s) failed: runCommand (exit code 1)"]
    reflection = state.reflections[-1]
    assert reflection.confidence == pytest.approx(0.3)
    assert reflection.suggested_actions
    assert reflection.insight == "Task partially completed with some errors"
    observe_steps = [s.content for s in state.reasoning_steps if s.phase == AgentLoopPhase.observe]
    assert len(observe_steps) == 2


@pytest.mark.asyncio
async def test_error_confidence_above_threshold_does_not_continue() -> None:
    deps = CoordinatorDeps(
        repository=InMemoryStateRepository(),
        act_handler=_ScriptedAct([("runCommand", "boom")]),
        reflection=ReflectionPolicy(error_confidence=0.6),
    )

    result = await _coordinator(deps=deps).execute_turn()

    assert result.should_continue is False


@pytest.mark.asyncio
async def test_no_tools_records_exactly_one_tool_result_observation() -> None:
    coordinator = _coordinator()

    result = await coordinator.execute_turn()

    assert result.should_continue is False
    observations = coordinator.get_state().observations
    assert len(observations) == 1
    assert observations[0].type == ObservationType.tool_result
    assert observations[0].content == NO_TOOLS_OBSERVATION
    reflection = coordinator.get_state().reflections[-1]
    assert reflection.confidence == pytest.approx(0.7)
    assert reflection.insight == "Provided informational response"


@pytest.mark.asyncio
async def test_still_running_tools_get_default_confidence() -> None:
    class _StartOnly:
        async def __call__(self, coordinator: AgentLoopCoordinator, user_message: str) -> None:
            await coordinator.track_tool_execution("searchCode", {"q": "x"})

    coordinator = _coordinator(act=_StartOnly())

    result = await coordinator.execute_turn()

    assert result.should_continue is False
    state = coordinator.get_state()
    assert state.observations == []
    assert state.reflections[-1].confidence == pytest.approx(0.5)
    assert state.reflections[-1].learnings == []


@pytest.mark.asyncio
async def test_exception_in_phase_stops_the_loop() -> None:
    sink = _RecordingSink()
    coordinator = _coordinator(act=_FailingAct(), sink=sink)

    result = await coordinator.execute_turn()

    assert result.should_continue is False
    assert result.next_action is None
    state = coordinator.get_state()
    assert state.is_active is False
    errors = [o for o in state.observations if o.type == ObservationType.error]
    assert [o.content for o in errors] == ["model provider unavailable"]
    assert ("observation", (ObservationType.error, "model provider unavailable")) in sink.events
    assert AgentLoopPhase.observe not in sink.phases()
    assert state.reflections == []


@pytest.mark.asyncio
async def test_sequential_turns_accumulate_and_observe_only_new_tools() -> None:
    act = _ScriptedAct([("runCommand", "boom")])
    coordinator = _coordinator(act=act)

    first = await coordinator.execute_turn("install deps")
    act.calls = []
    second = await coordinator.execute_turn("thanks")

    assert first.should_continue is True
    assert second.should_continue is False
    state = coordinator.get_state()
    assert state.turn_count == 2
    assert len(state.reflections) == 2
    assert state.observations[-1].type == ObservationType.tool_result
    assert state.observed_tool_count == 1
    assert act.messages == ["install deps", "thanks"]


@pytest.mark.asyncio
async def test_tool_call_callbacks_map_external_ids() -> None:
    class _StreamingAct:
        async def __call__(self, coordinator: AgentLoopCoordinator, user_message: str) -> None:
            await coordinator.on_tool_call_start({"toolCallId": "call-1", "toolName": "readFile", "args": {"path": "a"}})
            await coordinator.on_tool_call_start({"id": "call-2", "name": "searchCode", "input": {"q": "x"}})
            await coordinator.on_tool_call_finish({"toolCallId": "call-2", "error": "index missing"})
            await coordinator.on_tool_call_finish({"toolCallId": "call-1", "output": "content"})
            assert await coordinator.on_tool_call_finish({"toolCallId": "call-9", "result": "?"}) is None

    coordinator = _coordinator(act=_StreamingAct())

    await coordinator.execute_turn()

    executions = {e.name: e for e in coordinator.get_tool_executions()}
    assert executions["readFile"].status == ToolExecutionStatus.success
    assert executions["readFile"].result == "content"
    assert executions["searchCode"].status == ToolExecutionStatus.error
    assert executions["searchCode"].error == "index missing"


@pytest.mark.asyncio
async def test_state_access_before_initialization_raises() -> None:
    coordinator = _coordinator()

    with pytest.raises(AgentLoopNotInitializedError):
        coordinator.get_state()

    await coordinator.ensure_initialized()

    assert coordinator.is_initialized is True
    assert coordinator.get_state().project_id == "p1"


@pytest.mark.asyncio
async def test_lock_timeout_skips_the_turn() -> None:
    deps = CoordinatorDeps(repository=InMemoryStateRepository(), locks=_TimeoutLocks())
    coordinator = _coordinator(deps=deps)

    result = await coordinator.execute_turn()

    assert result.should_continue is False
    assert coordinator.is_initialized is False


@pytest.mark.asyncio
async def test_sink_failures_do_not_break_the_turn() -> None:
    coordinator = _coordinator(act=_ScriptedAct([("readFile", None)]), sink=_BrokenSink())

    result = await coordinator.execute_turn()

    assert result.should_continue is False
    assert coordinator.get_state().reflections[-1].confidence == pytest.approx(0.9)


@pytest.mark.asyncio
async def test_turn_state_is_persisted_to_the_store() -> None:
    store = InMemoryKeyValueStore()
    repo = KeyValueStateRepository(store)
    coordinator = _coordinator(deps=CoordinatorDeps(repository=repo, act_handler=_ScriptedAct([("readFile", None)])))

    await coordinator.execute_turn()

    saved = AgentLoopStateManager.from_json(await store.get("agent-loop:s1")).get_state()
    assert saved == coordinator.get_state()
    assert saved.is_active is False
    assert saved.turn_count == 1

    resumed = _coordinator(deps=CoordinatorDeps(repository=repo))
    await resumed.execute_turn("next")
    assert resumed.get_state().turn_count == 2


@pytest.mark.asyncio
async def test_concurrent_turns_on_one_session_do_not_interleave() -> None:
    class _SlowAct:
        async def __call__(self, coordinator: AgentLoopCoordinator, user_message: str) -> None:
            await asyncio.sleep(0.01)

    sink = _RecordingSink()
    deps = CoordinatorDeps(repository=InMemoryStateRepository(), act_handler=_SlowAct())
    a = _coordinator(deps=deps, sink=sink)
    b = _coordinator(deps=deps, sink=sink)

    await asyncio.gather(a.execute_turn(), b.execute_turn())

    cycle = [AgentLoopPhase.think, AgentLoopPhase.act, AgentLoopPhase.observe, AgentLoopPhase.reflect]
    assert sink.phases() == cycle + cycle
    assert a.get_state().turn_count == 2


@pytest.mark.asyncio
async def test_coordinators_on_a_shared_store_build_on_each_others_turns() -> None:
    store = InMemoryKeyValueStore()
    a = _coordinator(deps=CoordinatorDeps(repository=KeyValueStateRepository(store)))
    b = _coordinator(deps=CoordinatorDeps(repository=KeyValueStateRepository(store)))

    await a.execute_turn("first")
    await b.execute_turn("second")
    await b.update_project_files({"src/app.py": "print('hi')"})
    await a.execute_turn("third")

    saved = AgentLoopStateManager.from_json(await store.get("agent-loop:s1")).get_state()
    assert saved.turn_count == 3
    assert saved.project_files["src/app.py"] == "print('hi')"
    assert a.get_state().turn_count == 3
    assert len(saved.reflections) == 3


@pytest.mark.asyncio
async def test_coordinators_without_deps_share_the_default_bundle() -> None:
    shared = CoordinatorDeps()
    factory.set_default_deps(shared)

    a = AgentLoopCoordinator("same")
    b = AgentLoopCoordinator("same")
    await a.execute_turn("hello")
    await b.execute_turn("again")

    assert a.deps is shared
    assert b.deps is shared
    assert b.get_summary().turn_count == 2


@pytest.mark.asyncio
async def test_tool_finishing_after_its_turn_is_reflected_next_turn() -> None:
    started: List[str] = []

    class _StartOnce:
        async def __call__(self, coordinator: AgentLoopCoordinator, user_message: str) -> None:
            if not started:
                started.append(await coordinator.track_tool_execution("runCommand", {"cmd": "npm test"}))

    coordinator = _coordinator(act=_StartOnce())

    first = await coordinator.execute_turn("run the tests")
    await coordinator.update_tool_execution(started[0], error="exit code 1")
    second = await coordinator.execute_turn("and now?")

    assert first.should_continue is False
    assert second.should_continue is True
    assert second.next_action == RETRY_ACTION
    state = coordinator.get_state()
    assert state.observations[-1].type == ObservationType.error
    assert "runCommand (exit code 1)" in state.observations[-1].content
    assert state.observed_tool_count == 1
