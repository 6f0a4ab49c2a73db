"""Agent runners backed by pydantic-ai."""

from .runner import AgentNotFoundError, PydanticAIAgentRunner

__all__ = ["AgentNotFoundError", "PydanticAIAgentRunner"]
