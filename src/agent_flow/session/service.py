"""Agent service: entry point that opens sessions.

The service owns the provider clients (one per model provider, shared by
every session it opens) and builds a SessionManager for a new or existing
session from the flow record stored for it.
"""

from typing import Optional

from openai import AsyncOpenAI

from ..agent import Agent
from ..config.loader import load_provider_settings
from ..config.schemas import AgentConfig, AgentFlowConfig, validate_agent_flow_config
from ..errors import ConfigError, NotFoundError
from ..flow import FlowGraph
from ..llm import create_provider_client
from ..models import AgentFlowRecord, ModelProvider, Session
from ..tools import ToolClient
from ..tools.registry import ClientFactory
from ..utils import generate_session_id, generate_uuid, get_logger
from .manager import SessionManager
from .store import HistoryStore

logger = get_logger(__name__)

DEFAULT_SESSION_TITLE = "New Session"


class AgentService:
    """Opens sessions against a history store.

    Attributes:
        store: Persistence collaborator
        client_factory: Builds tool clients for agents
    """

    def __init__(
        self,
        store: HistoryStore,
        client_factory: ClientFactory = ToolClient,
        provider_clients: Optional[dict[ModelProvider, AsyncOpenAI]] = None,
    ) -> None:
        """Initialize the service.

        Args:
            store: Persistence collaborator
            client_factory: Builds tool clients from MCP configurations
            provider_clients: Pre-built provider clients; others are created on demand
        """
        self.store = store
        self.client_factory = client_factory
        self._provider_clients: dict[ModelProvider, AsyncOpenAI] = dict(provider_clients or {})

    def provider_client(self, provider: ModelProvider) -> AsyncOpenAI:
        """Get the shared client for a provider, creating it on first use.

        Raises:
            UnsupportedProviderError: If the provider has no backend
            ConfigError: If credentials are missing
        """
        client = self._provider_clients.get(provider)
        if client is None:
            client = create_provider_client(load_provider_settings(provider))
            self._provider_clients[provider] = client
        return client

    async def create_agent(self, name: str, config: AgentConfig) -> Agent:
        return await Agent.create(name, config, self.provider_client(config.provider), self.client_factory)

    async def register_flow(
        self,
        config: AgentFlowConfig,
        name: str,
        agent_flow_id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> AgentFlowRecord:
        """Validate and store a flow configuration.

        Args:
            config: Flow configuration
            name: Display name
            agent_flow_id: Identifier; generated when omitted
            description: Optional description

        Returns:
            Stored flow record
        """
        FlowGraph(config)
        record = AgentFlowRecord(
            id=agent_flow_id or generate_uuid(),
            name=name,
            config=config.model_dump(mode="json", by_alias=True, exclude_none=True),
            description=description,
        )
        await self.store.save_agent_flow(record)
        logger.info(f"Registered agent flow {record.name} ({record.id})")
        return record

    async def load_flow_config(self, agent_flow_id: str) -> AgentFlowConfig:
        """Load and validate a stored flow configuration.

        Raises:
            NotFoundError: If no flow has the id
            ConfigError: If the stored configuration is invalid
        """
        record = await self.store.get_agent_flow(agent_flow_id)
        if record is None:
            raise NotFoundError("agent flow", agent_flow_id)
        return validate_agent_flow_config(record.config)

    async def get_or_create_session(
        self,
        user_id: Optional[str] = None,
        agent_flow_id: Optional[str] = None,
        session_id: Optional[str] = None,
        title: Optional[str] = None,
    ) -> SessionManager:
        """Open an existing session or create a new one.

        Without a session id a new session is created for the user and flow.
        With one, the stored session and its flow are loaded.

        Args:
            user_id: Owning user (required for a new session)
            agent_flow_id: Flow to bind (required for a new session)
            session_id: Existing session to open
            title: Title of a new session

        Returns:
            Initialised session manager

        Raises:
            ConfigError: If a new session lacks its user or flow
            NotFoundError: If the session or its flow does not exist
        """
        if session_id is None:
            if not user_id or not agent_flow_id:
                raise ConfigError("user_id and agent_flow_id are required to create a new session")
            config = await self.load_flow_config(agent_flow_id)
            session = await self.store.create_session(
                Session(
                    id=generate_session_id(),
                    created_by=user_id,
                    agent_flow_id=agent_flow_id,
                    title=title or DEFAULT_SESSION_TITLE,
                )
            )
            logger.info(f"Created session for user {user_id}", extra={"session_id": session.id})
        else:
            existing = await self.store.get_session(session_id)
            if existing is None:
                raise NotFoundError("session", session_id)
            session = existing
            config = await self.load_flow_config(session.agent_flow_id)
            logger.info(f"Opened existing session owned by {session.created_by}", extra={"session_id": session.id})

        return await SessionManager.initialize(session, config, self.store, self.create_agent)

    async def close(self) -> None:
        """Close the shared provider clients."""
        for client in self._provider_clients.values():
            await client.close()
        self._provider_clients.clear()
