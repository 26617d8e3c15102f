"""MCP tool access for agent-flow."""

from .mcp_client import (
    MCPMessage,
    MCPStdioTransport,
    MCPTransport,
    ToolClient,
    create_mcp_transport,
)
from .mcp_streamable_http import MCPStreamableHTTPTransport, SSEEventAggregator
from .registry import ToolRegistry, split_qualified_name

__all__ = [
    "MCPMessage",
    "MCPTransport",
    "MCPStdioTransport",
    "MCPStreamableHTTPTransport",
    "SSEEventAggregator",
    "ToolClient",
    "ToolRegistry",
    "create_mcp_transport",
    "split_qualified_name",
]
