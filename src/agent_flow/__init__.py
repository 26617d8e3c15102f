"""agent-flow.

A conversational-agent runtime: a flow graph of agent nodes, a per-session
turn state machine, and agents that bind a language model to namespaced
MCP tools.
"""

from .agent import Agent
from .config import (
    AgentConfig,
    AgentFlowConfig,
    MCPConfig,
    Node,
    load_agent_flow_config,
    load_config_file,
    load_provider_settings,
)
from .errors import (
    AgentError,
    AgentFlowError,
    ConfigError,
    DispatchError,
    InvalidContinuation,
    InvocationError,
    NoToolCallsFound,
    ProviderError,
    TooManyLoopsError,
    ToolConnectionError,
)
from .flow import FlowGraph
from .models import HistoryEntry, HistoryMessage, Session, StopReason
from .session import AgentService, FileHistoryStore, HistoryStore, InMemoryHistoryStore, SessionManager
from .streaming import StreamChannel, StreamEvent, StreamObserver
from .tools import ToolClient, ToolRegistry

__version__ = "0.1.0"

__all__ = [
    # Version
    "__version__",
    # Runtime
    "Agent",
    "AgentService",
    "SessionManager",
    "FlowGraph",
    "ToolClient",
    "ToolRegistry",
    # Persistence
    "HistoryStore",
    "InMemoryHistoryStore",
    "FileHistoryStore",
    # Streaming
    "StreamEvent",
    "StreamObserver",
    "StreamChannel",
    # Entities
    "Session",
    "HistoryEntry",
    "HistoryMessage",
    "StopReason",
    # Configuration
    "AgentConfig",
    "AgentFlowConfig",
    "MCPConfig",
    "Node",
    "load_agent_flow_config",
    "load_config_file",
    "load_provider_settings",
    # Errors
    "AgentFlowError",
    "ConfigError",
    "ToolConnectionError",
    "ProviderError",
    "InvocationError",
    "InvalidContinuation",
    "DispatchError",
    "NoToolCallsFound",
    "AgentError",
    "TooManyLoopsError",
]
