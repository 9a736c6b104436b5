from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import ConfigDict, Field

from .base import BaseSchema


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


class AgentLoopPhase(str, Enum):
    think = "think"
    act = "act"
    observe = "observe"
    reflect = "reflect"


class ToolExecutionStatus(str, Enum):
    pending = "pending"
    running = "running"
    success = "success"
    error = "error"


class ObservationType(str, Enum):
    tool_result = "tool-result"
    user_feedback = "user-feedback"
    error = "error"
    success = "success"


TERMINAL_TOOL_STATUSES = frozenset({ToolExecutionStatus.success, ToolExecutionStatus.error})


class ReasoningStep(BaseSchema):
    id: str = Field(default_factory=_new_id)
    phase: AgentLoopPhase
    timestamp: datetime = Field(default_factory=_utc_now)
    content: str
    metadata: Optional[Dict[str, Any]] = None


class ToolExecution(BaseSchema):
    id: str = Field(default_factory=_new_id)
    name: str
    args: Dict[str, Any] = Field(default_factory=dict)
    dependencies: Optional[List[str]] = Field(
        default=None,
        description="Ids of tool executions that must succeed before this one is ready.",
    )

    status: ToolExecutionStatus = ToolExecutionStatus.running
    started_at: datetime = Field(default_factory=_utc_now)
    completed_at: Optional[datetime] = None
    duration: Optional[float] = Field(default=None, description="completed_at - started_at, in seconds.")

    result: Any = None
    error: Optional[str] = None
    observed: bool = Field(default=False, description="Set once an observe phase has accounted for the outcome.")


class Observation(BaseSchema):
    id: str = Field(default_factory=_new_id)
    timestamp: datetime = Field(default_factory=_utc_now)
    type: ObservationType
    content: str
    related_tool_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class Reflection(BaseSchema):
    id: str = Field(default_factory=_new_id)
    timestamp: datetime = Field(default_factory=_utc_now)
    insight: str
    learnings: List[str] = Field(default_factory=list)
    suggested_actions: Optional[List[str]] = None
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class ConversationMessage(BaseSchema):
    # Chat transcripts carry extra per-message keys (ids, timestamps) that are not kept.
    model_config = ConfigDict(extra="ignore")

    role: str
    content: str


class SessionSeed(BaseSchema):
    """Values used to create a session state that does not exist yet."""

    project_id: str = ""
    user_id: str = ""
    project_files: Dict[str, str] = Field(default_factory=dict)
    conversation_history: List[ConversationMessage] = Field(default_factory=list)


class AgentLoopState(BaseSchema):
    """Reasoning history of one session.

    Only ``AgentLoopStateManager`` mutates an instance of this model; everything
    else should treat it as a read-only snapshot.
    """

    session_id: str = Field(default_factory=_new_id)
    project_id: str = ""
    user_id: str = ""

    current_phase: AgentLoopPhase = AgentLoopPhase.think
    is_active: bool = False
    turn_count: int = Field(default=0, ge=0)

    reasoning_steps: List[ReasoningStep] = Field(default_factory=list)

    tool_executions: List[ToolExecution] = Field(default_factory=list)
    pending_tools: List[str] = Field(default_factory=list, description="Ids of queued, not yet started executions.")
    observed_tool_count: int = Field(
        default=0,
        ge=0,
        description="Length of the leading run of tool executions already accounted for by an observe phase.",
    )

    observations: List[Observation] = Field(default_factory=list)
    reflections: List[Reflection] = Field(default_factory=list)

    conversation_history: List[ConversationMessage] = Field(default_factory=list)
    project_files: Dict[str, str] = Field(default_factory=dict)

    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


class AgentLoopSummary(BaseSchema):
    phase: AgentLoopPhase
    turn_count: int
    total_reasoning_steps: int
    total_tool_executions: int
    successful_tools: int
    failed_tools: int
    total_observations: int
    total_reflections: int
