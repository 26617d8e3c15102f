"""Configuration loader for agent-flow.

This module loads YAML and JSON flow files with environment variable
expansion, and resolves model-provider credentials from the environment.
"""

import json
import os
import re
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from ..errors import ConfigError, UnsupportedProviderError
from ..models import ModelProvider
from .schemas import AgentFlowConfig, ProviderSettings, validate_agent_flow_config

# Pattern for environment variable substitution: ${VAR_NAME} or ${VAR_NAME:-default}
ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


def _expand_env_vars(value: Any) -> Any:
    """Recursively expand environment variables in a value.

    Supports ${VAR} and ${VAR:-default} syntax.

    Args:
        value: The value to expand (can be str, dict, list)

    Returns:
        The value with environment variables expanded
    """
    if isinstance(value, str):
        def replace_env_var(match: re.Match[str]) -> str:
            default = match.group(2) if match.group(2) is not None else ""
            return os.environ.get(match.group(1), default)

        return ENV_VAR_PATTERN.sub(replace_env_var, value)

    elif isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}

    elif isinstance(value, list):
        return [_expand_env_vars(item) for item in value]

    return value


def get_default_config_dir() -> Path:
    """Get the agent-flow data directory.

    Uses $AGENT_FLOW_HOME when set, otherwise ~/.agent-flow/. The directory
    is created if missing.

    Returns:
        Path to the data directory
    """
    override = os.environ.get("AGENT_FLOW_HOME")
    config_dir = Path(override).expanduser() if override else Path.home() / ".agent-flow"
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def load_config_file(file_path: str | Path, expand_env: bool = True) -> dict[str, Any]:
    """Load a YAML or JSON configuration file.

    Args:
        file_path: Path to the file (.yaml, .yml or .json)
        expand_env: Whether to expand environment variables

    Returns:
        Dictionary containing the configuration

    Raises:
        ConfigError: If the file is missing, unparsable or of unknown type
    """
    path = Path(file_path)
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {file_path}")

    suffix = path.suffix.lower()
    try:
        with open(path, "r", encoding="utf-8") as f:
            if suffix in (".yaml", ".yml"):
                config = yaml.safe_load(f) or {}
            elif suffix == ".json":
                config = json.load(f)
            else:
                raise ConfigError(f"Cannot detect config type from extension: {suffix}")
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigError(f"Failed to parse {file_path}: {e}") from e

    if not isinstance(config, dict):
        raise ConfigError(f"Configuration root must be a mapping: {file_path}")

    if expand_env:
        config = _expand_env_vars(config)
    return config


def load_agent_flow_config(file_path: str | Path) -> AgentFlowConfig:
    """Load, validate and graph-check an agent flow file.

    A file may hold the flow at its root or under an ``agent_flow`` key.

    Args:
        file_path: Path to the flow file

    Returns:
        Validated AgentFlowConfig

    Raises:
        ConfigError: If the file or the flow graph is invalid
    """
    from ..flow.graph import FlowGraph

    data = load_config_file(file_path)
    config = validate_agent_flow_config(data.get("agent_flow", data))
    FlowGraph(config)  # raises ConfigError on a broken graph
    return config


def load_provider_settings(provider: ModelProvider | str) -> ProviderSettings:
    """Resolve provider credentials from the environment (and .env).

    OPENAI_AUTH_TYPE selects "open_router" (default) or "openai";
    OPENAI_BASE_URL overrides the endpoint.

    Args:
        provider: Model provider selector

    Returns:
        ProviderSettings

    Raises:
        UnsupportedProviderError: If the provider has no backend
    """
    load_dotenv()
    provider = ModelProvider(provider)
    if provider != ModelProvider.OPENAI:
        raise UnsupportedProviderError(provider.value)

    auth_type = os.environ.get("OPENAI_AUTH_TYPE", "open_router")
    if auth_type == "openai":
        return ProviderSettings(
            auth_type="openai",
            api_key_env="OPENAI_API_KEY",
            base_url=os.environ.get("OPENAI_BASE_URL") or None,
        )
    return ProviderSettings(
        auth_type="open_router",
        api_key_env="OPENROUTER_API_KEY",
        base_url=os.environ.get("OPENAI_BASE_URL", OPENROUTER_BASE_URL),
    )
