"""Agent definitions: a model, its fallbacks, and a system prompt."""

from .schemas import Agent, AgentSummary, ModelSpec
from .registry import AgentRegistry

__all__ = [
    "Agent",
    "AgentSummary",
    "ModelSpec",
    "AgentRegistry",
]
