"""Construction of provider clients and model backends."""

import os

from openai import AsyncOpenAI

from ..config.schemas import AgentConfig, ProviderSettings
from ..errors import ConfigError, UnsupportedProviderError
from ..models import ModelProvider
from ..utils.logging import get_logger
from .base import ModelBackend
from .openai import OpenAIBackend

logger = get_logger(__name__)


def create_provider_client(settings: ProviderSettings) -> AsyncOpenAI:
    """Create the OpenAI-compatible client for provider settings.

    Args:
        settings: Resolved provider settings

    Returns:
        AsyncOpenAI client

    Raises:
        ConfigError: If the API key variable is unset
    """
    api_key = os.environ.get(settings.api_key_env, "")
    if not api_key:
        raise ConfigError(f"{settings.api_key_env} environment variable not set")

    logger.debug(f"Creating {settings.auth_type} client for {settings.base_url or 'default endpoint'}")
    return AsyncOpenAI(api_key=api_key, base_url=settings.base_url)


def create_backend(config: AgentConfig, client: AsyncOpenAI) -> ModelBackend:
    """Select the backend for an agent's provider.

    Args:
        config: Agent configuration
        client: Provider client for the selected provider

    Returns:
        Model backend

    Raises:
        UnsupportedProviderError: If the provider has no backend
    """
    if config.provider == ModelProvider.OPENAI:
        return OpenAIBackend(config, client)
    raise UnsupportedProviderError(config.provider.value)
