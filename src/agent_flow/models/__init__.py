"""Data models for agent-flow."""

from .history import AgentFlowRecord, HistoryEntry, ModelProvider, NodeType, Session, StopReason
from .message import (
    MESSAGE_VARIANTS,
    FunctionCall,
    HistoryMessage,
    OpenAIMessage,
    OpenAIToolCall,
    OpenAIToolResult,
    message_variant_for,
    parse_history_message,
)
from .tool import QUALIFIED_NAME_SEPARATOR, CallerContext, ToolDescriptor, ToolResult

__all__ = [
    # Sessions and history
    "Session",
    "HistoryEntry",
    "AgentFlowRecord",
    "StopReason",
    "NodeType",
    "ModelProvider",
    # Messages
    "HistoryMessage",
    "OpenAIMessage",
    "OpenAIToolCall",
    "OpenAIToolResult",
    "FunctionCall",
    "MESSAGE_VARIANTS",
    "message_variant_for",
    "parse_history_message",
    # Tools
    "ToolDescriptor",
    "ToolResult",
    "CallerContext",
    "QUALIFIED_NAME_SEPARATOR",
]
