from __future__ import annotations

"""Real-time event sink for loop progress.

The coordinator reports phase transitions, reasoning text, observations and
reflections to an optional ``EventSink`` so a UI can render the loop as it
runs. Sinks are display-only: nothing the coordinator does depends on them.

``QueueEventSink`` turns each call into an ``AgentLoopEvent`` model and puts
it on an ``asyncio.Queue``; an SSE endpoint drains the queue and writes
``event.model_dump_json(by_alias=True)`` per message.
"""

import asyncio
from datetime import datetime, timezone
from typing import Annotated, List, Literal, Optional, Protocol, Union

from pydantic import Field

from ..schemas.base import BaseSchema
from ..schemas.domain import AgentLoopPhase, ObservationType


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class EventSink(Protocol):
    """Receiver of loop progress for real-time display."""

    async def write_phase(self, phase: AgentLoopPhase) -> None: ...

    async def write_reasoning(self, phase: AgentLoopPhase, content: str) -> None: ...

    async def write_observation(
        self, type: ObservationType, content: str, related_tool_id: Optional[str] = None
    ) -> None: ...

    async def write_reflection(
        self,
        insight: str,
        learnings: List[str],
        suggested_actions: Optional[List[str]] = None,
        confidence: float = 0.5,
    ) -> None: ...


class AgentPhaseEvent(BaseSchema):
    type: Literal["agent-phase"] = "agent-phase"
    phase: AgentLoopPhase
    timestamp: datetime = Field(default_factory=_utc_now)


class AgentReasoningEvent(BaseSchema):
    type: Literal["agent-reasoning"] = "agent-reasoning"
    phase: AgentLoopPhase
    content: str
    timestamp: datetime = Field(default_factory=_utc_now)


class AgentObservationEvent(BaseSchema):
    type: Literal["agent-observation"] = "agent-observation"
    observation_type: ObservationType = Field(alias="observationType")
    content: str
    related_tool_id: Optional[str] = Field(default=None, alias="relatedToolId")
    timestamp: datetime = Field(default_factory=_utc_now)


class AgentReflectionEvent(BaseSchema):
    type: Literal["agent-reflection"] = "agent-reflection"
    insight: str
    learnings: List[str] = Field(default_factory=list)
    suggested_actions: Optional[List[str]] = Field(default=None, alias="suggestedActions")
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    timestamp: datetime = Field(default_factory=_utc_now)


AgentLoopEvent = Annotated[
    Union[AgentPhaseEvent, AgentReasoningEvent, AgentObservationEvent, AgentReflectionEvent],
    Field(discriminator="type"),
]


class QueueEventSink:
    """Event sink that buffers ``AgentLoopEvent`` models on an asyncio queue."""

    def __init__(self, queue: Optional["asyncio.Queue[AgentLoopEvent]"] = None) -> None:
        self.queue: "asyncio.Queue[AgentLoopEvent]" = queue if queue is not None else asyncio.Queue()

    async def write_phase(self, phase: AgentLoopPhase) -> None:
        await self.queue.put(AgentPhaseEvent(phase=phase))

    async def write_reasoning(self, phase: AgentLoopPhase, content: str) -> None:
        await self.queue.put(AgentReasoningEvent(phase=phase, content=content))

    async def write_observation(
        self, type: ObservationType, content: str, related_tool_id: Optional[str] = None
    ) -> None:
        await self.queue.put(
            AgentObservationEvent(observation_type=type, content=content, related_tool_id=related_tool_id)
        )

    async def write_reflection(
        self,
        insight: str,
        learnings: List[str],
        suggested_actions: Optional[List[str]] = None,
        confidence: float = 0.5,
    ) -> None:
        await self.queue.put(
            AgentReflectionEvent(
                insight=insight,
                learnings=list(learnings),
                suggested_actions=list(suggested_actions) if suggested_actions is not None else None,
                confidence=max(0.0, min(1.0, float(confidence))),
            )
        )

    def drain(self) -> List[AgentLoopEvent]:
        """Return and remove every buffered event without waiting."""
        events: List[AgentLoopEvent] = []
        while not self.queue.empty():
            events.append(self.queue.get_nowait())
        return events
