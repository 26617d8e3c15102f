"""Agent runtime for agent-flow.

An Agent binds one AgentConfig to a model backend and to the ToolRegistry
holding its own MCP servers. It performs the two kinds of agent steps the
session manager asks for: a model completion and a tool step.
"""

from typing import Optional

from openai import AsyncOpenAI

from ..config.schemas import AgentConfig
from ..errors import AgentError, InvocationError, NoToolCallsFound, ProviderError
from ..llm import ModelBackend, PendingToolCall, create_backend
from ..models import CallerContext, HistoryMessage, StopReason, ToolDescriptor, ToolResult
from ..streaming import StreamObserver
from ..tools import ToolClient, ToolRegistry
from ..tools.registry import ClientFactory
from ..utils.logging import get_logger

logger = get_logger(__name__)


class Agent:
    """A model backend plus the tools it may call.

    Attributes:
        name: Agent name from the flow configuration
        config: Agent configuration
        backend: Provider-specific model backend
        registry: Connected tool servers of this agent
    """

    def __init__(
        self,
        name: str,
        config: AgentConfig,
        backend: ModelBackend,
        registry: ToolRegistry,
    ) -> None:
        self.name = name
        self.config = config
        self.backend = backend
        self.registry = registry

    @classmethod
    async def create(
        cls,
        name: str,
        config: AgentConfig,
        client: AsyncOpenAI,
        client_factory: ClientFactory = ToolClient,
    ) -> "Agent":
        """Build an agent and connect its tool servers.

        Args:
            name: Agent name
            config: Agent configuration
            client: Shared provider client
            client_factory: Builds tool clients from MCP configurations

        Returns:
            Ready agent

        Raises:
            UnsupportedProviderError: If the provider has no backend
            ToolConnectionError: If a tool server cannot be connected
        """
        backend = create_backend(config, client)
        registry = await ToolRegistry.create(config.mcp_servers, client_factory)
        logger.info(f"Agent {name} ready with {len(registry.tools)} tools", extra={"agent": name})
        return cls(name, config, backend, registry)

    @property
    def tools(self) -> list[ToolDescriptor]:
        """Tools offered to the model: registry tools filtered by the allow-list."""
        return self.registry.filter_tools(self.config.tools)

    async def run_completion(
        self,
        history: list[HistoryMessage],
        observer: Optional[StreamObserver] = None,
    ) -> tuple[HistoryMessage, StopReason]:
        """Run a model completion over the transcript.

        Args:
            history: Full transcript, oldest first
            observer: Receives streamed deltas

        Returns:
            Tuple of (assistant message, stop reason)

        Raises:
            AgentError: If the provider fails (ProviderError chained)
        """
        logger.info(f"Agent {self.name} running completion", extra={"agent": self.name})
        try:
            return await self.backend.complete(self.config.system_prompt, self.tools, history, observer)
        except ProviderError as e:
            raise AgentError(self.name, str(e)) from e

    async def execute_tools(self, last_message: HistoryMessage, caller: CallerContext) -> HistoryMessage:
        """Execute every tool call of an assistant message.

        Calls run one after another. The step is atomic: the first failing
        call aborts it and no partial results are returned. Tool-reported
        errors are results, not failures.

        Args:
            last_message: Assistant message requesting tool calls
            caller: Caller identity forwarded to the tool servers

        Returns:
            One tool message with a result per call

        Raises:
            NoToolCallsFound: If the message requests no tool calls
            DispatchError: If a call names a malformed or unknown tool
            AgentError: If a tool invocation fails (InvocationError chained)
        """
        calls = self.backend.pending_tool_calls(last_message)
        if not calls:
            raise NoToolCallsFound(f"agent '{self.name}': last message has no tool calls")

        results: list[tuple[PendingToolCall, ToolResult]] = []
        for call in calls:
            logger.info(
                f"Agent {self.name} calling {call.name}",
                extra={"agent": self.name, "tool": call.name, "session_id": caller.session_id},
            )
            try:
                result = await self.registry.dispatch(call.name, call.arguments, caller)
            except InvocationError as e:
                raise AgentError(self.name, f"tool {call.name} failed: {e}") from e
            results.append((call, result))

        return self.backend.tool_results_message(results)

    async def close(self) -> None:
        """Disconnect the agent's tool servers."""
        await self.registry.close()
