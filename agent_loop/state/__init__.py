"""In-process mutation of session reasoning state."""

from .manager import AgentLoopStateManager

__all__ = ["AgentLoopStateManager"]
