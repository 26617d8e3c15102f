"""Model backends for agent-flow."""

from .base import ModelBackend, PendingToolCall
from .factory import create_backend, create_provider_client
from .openai import OpenAIBackend, map_finish_reason

__all__ = [
    "ModelBackend",
    "PendingToolCall",
    "OpenAIBackend",
    "create_backend",
    "create_provider_client",
    "map_finish_reason",
]
