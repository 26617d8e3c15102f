"""Configuration management for agent-flow."""

from .loader import (
    get_default_config_dir,
    load_agent_flow_config,
    load_config_file,
    load_provider_settings,
)
from .schemas import (
    AgentConfig,
    AgentFlowConfig,
    MCPConfig,
    Node,
    NodeOutput,
    ProviderSettings,
    validate_agent_flow_config,
    validate_mcp_config,
)

__all__ = [
    # Loader
    "get_default_config_dir",
    "load_config_file",
    "load_agent_flow_config",
    "load_provider_settings",
    # Schemas
    "AgentConfig",
    "AgentFlowConfig",
    "MCPConfig",
    "Node",
    "NodeOutput",
    "ProviderSettings",
    "validate_agent_flow_config",
    "validate_mcp_config",
]
