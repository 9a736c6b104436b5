"""LangGraph-based turn runtime.

 The runtime runs one session's reasoning cycle, a turn at a time:

 - ``AgentLoopCoordinator`` compiles the think -> act -> observe -> reflect
   graph and exposes the tool tracking API used by the act-phase handler.
 - ``CoordinatorDeps`` bundles the collaborators (repository, locks,
   classifier, reflection policy, act handler).
 - ``EventSink`` / ``QueueEventSink`` forward progress to a real-time consumer.
 - ``ToolCall`` / ``ToolResult`` normalize tool-call callbacks.
 """

from .coordinator import AgentLoopCoordinator
from .events import (
    AgentLoopEvent,
    AgentObservationEvent,
    AgentPhaseEvent,
    AgentReasoningEvent,
    AgentReflectionEvent,
    EventSink,
    QueueEventSink,
)
from .models import ActHandler, CoordinatorDeps, TurnResult
from .tool_calls import ToolCall, ToolResult, normalize_tool_call, normalize_tool_result

__all__ = [
    "AgentLoopCoordinator",
    "AgentLoopEvent",
    "AgentObservationEvent",
    "AgentPhaseEvent",
    "AgentReasoningEvent",
    "AgentReflectionEvent",
    "EventSink",
    "QueueEventSink",
    "ActHandler",
    "CoordinatorDeps",
    "TurnResult",
    "ToolCall",
    "ToolResult",
    "normalize_tool_call",
    "normalize_tool_result",
]
