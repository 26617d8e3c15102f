"""Configuration schemas for agent-flow.

This module defines Pydantic models for validating flow, agent and MCP
server configuration. Field aliases accept the camelCase keys used by
stored flow documents (``agentName``, ``systemPrompt``, ``mcpServers``...).
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from ..errors import ConfigError
from ..models import QUALIFIED_NAME_SEPARATOR, ModelProvider, NodeType


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class MCPConfig(_FrozenModel):
    """Configuration for one remote MCP tool server.

    Attributes:
        name: Server name, used as the qualified tool name prefix
        protocol: "stdio" or "streamablehttp"
        command: Executable path (stdio)
        args: Command arguments (stdio)
        envs: Extra environment variables (stdio)
        url: Endpoint URL (streamablehttp)
        key: Bearer credential (streamablehttp)
        timeout: Per-request timeout in seconds
        retry_max_attempts: Transport-level retries for timeouts and throttling
    """

    name: str = Field(..., min_length=1, description="Server name")
    protocol: Literal["stdio", "streamablehttp"] = Field(..., description="Transport protocol")
    command: Optional[str] = Field(None, description="Executable path (stdio)")
    args: list[str] = Field(default_factory=list, description="Command arguments (stdio)")
    envs: dict[str, str] = Field(default_factory=dict, description="Environment variables (stdio)")
    url: Optional[str] = Field(None, description="Endpoint URL (streamablehttp)")
    key: Optional[str] = Field(None, description="Bearer credential (streamablehttp)")
    timeout: float = Field(default=30.0, gt=0, description="Request timeout in seconds")
    retry_max_attempts: int = Field(default=0, ge=0, alias="retryMaxAttempts", description="Transport retries")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Server names must not contain the qualified-name separator."""
        if QUALIFIED_NAME_SEPARATOR in v:
            raise ValueError(f"MCP server name must not contain '{QUALIFIED_NAME_SEPARATOR}'")
        return v

    @model_validator(mode="after")
    def validate_protocol_params(self) -> "MCPConfig":
        """Check that the parameters required by the protocol are present."""
        if self.protocol == "stdio" and not self.command:
            raise ValueError(f"MCP server '{self.name}': command is required for stdio protocol")
        if self.protocol == "streamablehttp":
            if not self.url:
                raise ValueError(f"MCP server '{self.name}': URL is required for streamablehttp protocol")
            if not self.url.startswith(("http://", "https://")):
                raise ValueError(f"MCP server '{self.name}': URL must start with http:// or https://")
        return self

    @property
    def authorization_header(self) -> Optional[str]:
        """Authorization header value derived from the bearer credential."""
        if not self.key:
            return None
        if self.key.lower().startswith("bearer "):
            return self.key
        return f"Bearer {self.key}"


class AgentConfig(_FrozenModel):
    """Per-agent model and tool configuration.

    Attributes:
        description: Agent description
        system_prompt: System instruction for the model
        provider: Model provider selector
        model_id: Model identifier
        max_tokens: Maximum tokens to generate
        temperature: Sampling temperature
        top_p: Nucleus sampling
        top_k: Top-k sampling (provider extra)
        thinking_tokens: Reasoning token budget (provider extra)
        tools: Allow-list of qualified tool names; empty allows all
        mcp_servers: Tool servers this agent may call
    """

    description: str = Field(default="", description="Agent description")
    system_prompt: str = Field(default="", alias="systemPrompt", description="System instruction")
    provider: ModelProvider = Field(default=ModelProvider.OPENAI, description="Model provider")
    model_id: str = Field(..., alias="modelId", description="Model identifier")
    max_tokens: Optional[int] = Field(None, ge=1, alias="maxTokens", description="Maximum tokens")
    temperature: Optional[float] = Field(None, ge=0, le=2, description="Sampling temperature")
    top_p: Optional[float] = Field(None, gt=0, le=1, alias="topP", description="Nucleus sampling")
    top_k: Optional[int] = Field(None, ge=1, alias="topK", description="Top-k sampling")
    thinking_tokens: Optional[int] = Field(None, ge=1, alias="thinkingToken", description="Reasoning budget")
    tools: list[str] = Field(default_factory=list, description="Qualified tool allow-list")
    mcp_servers: list[MCPConfig] = Field(default_factory=list, alias="mcpServers", description="Tool servers")


class NodeOutput(_FrozenModel):
    """Output formatting descriptor of a node."""

    type: Literal["text", "structured"] = Field(default="text", description="Output type")
    content_format: str = Field(default="", alias="contentFormat", description="Format template or schema")
    content_role: Literal["user", "system", "assistant"] = Field(
        default="user", alias="contentRole", description="Role the output is delivered as"
    )


class Node(_FrozenModel):
    """One vertex of the flow graph.

    Attributes:
        id: Node identifier
        type: "start" or "agent"
        agent_name: Bound agent (agent nodes only)
        next: Successor node id
        output: Output formatting descriptor
    """

    id: str = Field(..., min_length=1, description="Node identifier")
    type: NodeType = Field(..., description="Node type")
    agent_name: Optional[str] = Field(None, alias="agentName", description="Bound agent name")
    next: Optional[str] = Field(None, description="Successor node id")
    output: Optional[NodeOutput] = Field(None, description="Output formatting descriptor")

    @model_validator(mode="after")
    def validate_agent_binding(self) -> "Node":
        """A start node has no agent; an agent node has exactly one."""
        if self.type == NodeType.START and self.agent_name is not None:
            raise ValueError(f"start node '{self.id}' must not bind an agent")
        if self.type == NodeType.AGENT and not self.agent_name:
            raise ValueError(f"agent node '{self.id}' requires agentName")
        return self

    @property
    def is_agent(self) -> bool:
        return self.type == NodeType.AGENT

    @property
    def is_start(self) -> bool:
        return self.type == NodeType.START


class AgentFlowConfig(_FrozenModel):
    """Static flow configuration: agents plus the ordered node list."""

    agents: dict[str, AgentConfig] = Field(default_factory=dict, description="Agents by name")
    nodes: list[Node] = Field(..., min_length=1, description="Ordered flow nodes")


class ProviderSettings(_FrozenModel):
    """Credentials and endpoint for a model provider.

    Attributes:
        auth_type: "openai" (api.openai.com) or "open_router"
        api_key_env: Environment variable holding the API key
        base_url: API base URL; None uses the SDK default
    """

    auth_type: Literal["openai", "open_router"] = Field(default="open_router", description="Auth type")
    api_key_env: str = Field(default="OPENROUTER_API_KEY", description="API key environment variable")
    base_url: Optional[str] = Field("https://openrouter.ai/api/v1", description="API base URL")


# Validation functions


def _format_validation_error(what: str, error: ValidationError) -> str:
    details = "; ".join(
        f"{'.'.join(str(p) for p in e['loc']) or '<root>'}: {e['msg']}" for e in error.errors()
    )
    return f"invalid {what}: {details}"


def validate_agent_flow_config(data: dict[str, Any]) -> AgentFlowConfig:
    """Validate agent flow configuration data.

    Args:
        data: Raw configuration dictionary

    Returns:
        Validated AgentFlowConfig object

    Raises:
        ConfigError: If the configuration is invalid
    """
    try:
        return AgentFlowConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(_format_validation_error("agent flow config", e)) from e


def validate_mcp_config(data: dict[str, Any]) -> MCPConfig:
    """Validate one MCP server configuration.

    Args:
        data: Raw configuration dictionary

    Returns:
        Validated MCPConfig object

    Raises:
        ConfigError: If the configuration is invalid
    """
    try:
        return MCPConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(_format_validation_error("MCP server config", e)) from e
