"""Exception hierarchy for agent-flow.

Every failure raised by the turn engine derives from AgentFlowError so that
inbound drivers can catch one base class and report the step as failed.
"""

from typing import Optional


class AgentFlowError(Exception):
    """Base class for all agent-flow errors."""


class ConfigError(AgentFlowError):
    """Malformed flow, agent or tool-server configuration.

    Raised before any turn runs.
    """


class UnsupportedProviderError(ConfigError):
    """A model provider selector has no backend implementation."""

    def __init__(self, provider: str) -> None:
        super().__init__(f"unsupported model provider: {provider}")
        self.provider = provider


class ToolConnectionError(AgentFlowError, ConnectionError):
    """A tool server could not be reached while building an agent."""

    def __init__(self, server_name: str, reason: str) -> None:
        super().__init__(f"failed to connect to MCP server '{server_name}': {reason}")
        self.server_name = server_name


class ProviderError(AgentFlowError):
    """The model provider failed during a completion.

    Attributes:
        stop_reason: Stop reason observed before the failure, if any
    """

    def __init__(self, message: str, stop_reason: Optional[str] = None) -> None:
        super().__init__(message)
        self.stop_reason = stop_reason


class InvocationError(AgentFlowError):
    """A remote tool call failed at the protocol or transport level."""


class InvalidContinuation(AgentFlowError):
    """The state machine cannot continue from the current history."""


class DispatchError(AgentFlowError):
    """A tool call references a malformed or unknown qualified name.

    Attributes:
        kind: "malformed_name" or "unknown_server"
        tool_name: The qualified name as requested by the model
    """

    kind = "dispatch"

    def __init__(self, tool_name: str, message: str) -> None:
        super().__init__(message)
        self.tool_name = tool_name


class MalformedToolNameError(DispatchError):
    kind = "malformed_name"

    def __init__(self, tool_name: str) -> None:
        super().__init__(
            tool_name,
            f"invalid tool name '{tool_name}', expected <server>--<tool>",
        )


class UnknownServerError(DispatchError):
    kind = "unknown_server"

    def __init__(self, tool_name: str, server_name: str) -> None:
        super().__init__(tool_name, f"MCP client not found: {server_name}")
        self.server_name = server_name


class NoToolCallsFound(AgentFlowError):
    """A tool step was requested but the last message holds no tool calls."""


class AgentError(AgentFlowError):
    """An agent step failed; the original error is chained as __cause__."""

    def __init__(self, agent_name: str, message: str) -> None:
        super().__init__(f"agent '{agent_name}': {message}")
        self.agent_name = agent_name


class TooManyLoopsError(AgentFlowError):
    """The per-message driving loop exceeded its iteration ceiling."""

    def __init__(self, max_loops: int) -> None:
        super().__init__(f"too many loops: turn did not return to the human after {max_loops} steps")
        self.max_loops = max_loops


class NotFoundError(AgentFlowError, LookupError):
    """A session or flow record does not exist in the store."""

    def __init__(self, kind: str, identifier: str) -> None:
        super().__init__(f"{kind} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier
