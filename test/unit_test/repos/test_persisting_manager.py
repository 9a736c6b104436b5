from __future__ import annotations

from typing import List

import pytest

from agent_loop.repos import PersistingStateManager
from agent_loop.schemas.domain import AgentLoopPhase, ObservationType, ToolExecutionStatus
from agent_loop.state.manager import AgentLoopStateManager


class _RecordingRepo:
    def __init__(self) -> None:
        self.saved: List[str] = []

    async def save(self, manager: AgentLoopStateManager) -> None:
        self.saved.append(manager.to_json())


@pytest.fixture
def repo() -> _RecordingRepo:
    return _RecordingRepo()


@pytest.fixture
def proxy(repo: _RecordingRepo) -> PersistingStateManager:
    return PersistingStateManager(AgentLoopStateManager.create("s1"), repo)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_every_mutation_is_saved(proxy: PersistingStateManager, repo: _RecordingRepo) -> None:
    await proxy.start_loop()
    await proxy.set_phase(AgentLoopPhase.act)
    await proxy.add_reasoning_step(AgentLoopPhase.act, "doing")
    execution = await proxy.track_tool_start("readFile", {"path": "a"})
    await proxy.track_tool_complete(execution.id, result="x")
    await proxy.add_observation(ObservationType.success, "ok")
    await proxy.add_reflection("done", ["l"], confidence=0.9)
    await proxy.mark_tools_observed()
    await proxy.update_conversation_history([{"role": "user", "content": "hi"}])
    await proxy.update_project_files({"a": "1"})
    await proxy.stop_loop()

    assert len(repo.saved) == 11
    last = AgentLoopStateManager.from_json(repo.saved[-1]).get_state()
    assert last == proxy.get_state()


@pytest.mark.asyncio
async def test_saved_snapshot_reflects_the_mutation(proxy: PersistingStateManager, repo: _RecordingRepo) -> None:
    await proxy.add_reasoning_step(AgentLoopPhase.think, "plan")

    saved = AgentLoopStateManager.from_json(repo.saved[-1])
    assert [s.content for s in saved.get_reasoning_steps()] == ["plan"]


@pytest.mark.asyncio
async def test_mark_tool_running_saves_only_on_change(proxy: PersistingStateManager, repo: _RecordingRepo) -> None:
    queued = await proxy.queue_tool("listFiles", {})
    saves = len(repo.saved)

    assert await proxy.mark_tool_running("unknown") is None
    assert len(repo.saved) == saves

    running = await proxy.mark_tool_running(queued.id)
    assert running is not None and running.status == ToolExecutionStatus.running
    assert len(repo.saved) == saves + 1
    assert proxy.get_ready_tools() == []


def test_queries_do_not_save(proxy: PersistingStateManager, repo: _RecordingRepo) -> None:
    proxy.get_state()
    proxy.get_summary()
    proxy.get_tool_executions()
    proxy.get_unobserved_tool_executions()

    assert repo.saved == []
    assert proxy.session_id == "s1"
