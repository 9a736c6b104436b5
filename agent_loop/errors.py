"""Error types for the agent loop package.

Defines a small hierarchy of exceptions raised by the coordinator, the turn
locks and the persistence layer. None of them escape ``execute_turn``; they
surface to callers that use the lower-level building blocks directly.
"""

from __future__ import annotations


class AgentLoopError(Exception):
    """Base error for all agent loop exceptions."""


class AgentLoopNotInitializedError(AgentLoopError):
    """Raised when session state is accessed before the coordinator loaded it."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Agent loop for session '{session_id}' is not initialized")
        self.session_id = session_id


class LockAcquisitionError(AgentLoopError):
    """Raised when a per-session turn lock cannot be acquired in time."""

    def __init__(self, lock_key: str, timeout_ms: int) -> None:
        super().__init__(f"Failed to acquire lock '{lock_key}' - timeout after {timeout_ms}ms")
        self.lock_key = lock_key
        self.timeout_ms = timeout_ms


class StateDeserializationError(AgentLoopError):
    """Raised when a stored session state cannot be decoded."""

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"Stored agent loop state at '{key}' is invalid: {reason}")
        self.key = key
