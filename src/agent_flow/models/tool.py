"""Tool entities for agent-flow.

This module defines the descriptors and results exchanged with MCP tool servers.
"""

import json
from typing import Any, Optional

from pydantic import BaseModel, Field

# Separator between server name and tool name in a qualified tool name
QUALIFIED_NAME_SEPARATOR = "--"


class ToolDescriptor(BaseModel):
    """A callable tool exposed by an MCP server.

    Attributes:
        name: Tool name as presented to the model (qualified once registered)
        description: Tool description
        input_schema: JSON Schema for arguments
        server: MCP server providing the tool
        original_name: Name as reported by the server
    """

    name: str = Field(..., description="Tool name presented to the model")
    description: str = Field(default="", description="Tool description")
    input_schema: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        description="JSON Schema for arguments",
    )
    server: Optional[str] = Field(None, description="MCP server providing the tool")
    original_name: Optional[str] = Field(None, description="Name reported by the server")

    def qualified(self, server_name: str) -> "ToolDescriptor":
        """Return a copy renamed to ``<server>--<tool>``.

        Args:
            server_name: Name of the providing server

        Returns:
            Renamed descriptor
        """
        original = self.original_name or self.name
        return self.model_copy(
            update={
                "name": f"{server_name}{QUALIFIED_NAME_SEPARATOR}{original}",
                "server": server_name,
                "original_name": original,
            }
        )

    def to_openai_tool(self) -> dict[str, Any]:
        """Convert to a chat-completions function tool definition.

        Returns:
            Tool definition dictionary
        """
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.input_schema,
            },
        }


class ToolResult(BaseModel):
    """Result of a tool invocation.

    Attributes:
        content: Text content blocks in server order
        structured_content: Structured result, if the server sent one
        is_error: Whether the tool reported a failure
    """

    content: list[str] = Field(default_factory=list, description="Text content blocks")
    structured_content: Optional[dict[str, Any]] = Field(None, description="Structured result")
    is_error: bool = Field(default=False, description="Tool-reported failure")

    @classmethod
    def from_mcp(cls, result: dict[str, Any]) -> "ToolResult":
        """Build from an MCP ``tools/call`` result payload.

        Non-text blocks are skipped. A result carrying only structured content
        is rendered as a single JSON text block.

        Args:
            result: MCP result dictionary

        Returns:
            ToolResult
        """
        texts = [
            block.get("text", "")
            for block in result.get("content") or []
            if isinstance(block, dict) and block.get("type") == "text"
        ]
        structured = result.get("structuredContent")
        if not texts and structured is not None:
            texts = [json.dumps(structured)]
        return cls(
            content=texts,
            structured_content=structured,
            is_error=bool(result.get("isError", False)),
        )


class CallerContext(BaseModel):
    """Caller identity attached to every remote tool call."""

    user_id: str = Field(..., description="User on whose behalf the call is made")
    session_id: str = Field(..., description="Session that issued the call")

    def to_meta(self) -> dict[str, str]:
        """Render as MCP ``_meta`` fields."""
        return {"user_id": self.user_id, "session_id": self.session_id}
