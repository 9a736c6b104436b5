"""Pydantic schemas describing a session's reasoning state."""

from .base import BaseSchema
from .domain import (
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

__all__ = [
    "BaseSchema",
    "AgentLoopPhase",
    "AgentLoopState",
    "AgentLoopSummary",
    "ConversationMessage",
    "Observation",
    "ObservationType",
    "ReasoningStep",
    "Reflection",
    "SessionSeed",
    "ToolExecution",
    "ToolExecutionStatus",
]
