"""Tool registry for agent-flow.

A registry owns the ToolClients of one agent and exposes their tools under
qualified names of the form ``<server>--<tool>``, so that tools with the same
name on different servers never collide.
"""

from typing import Callable, Iterable, Optional

from ..config.schemas import MCPConfig
from ..errors import (
    AgentFlowError,
    InvocationError,
    MalformedToolNameError,
    ToolConnectionError,
    UnknownServerError,
)
from ..models import QUALIFIED_NAME_SEPARATOR, CallerContext, ToolDescriptor, ToolResult
from ..utils.logging import get_logger
from .mcp_client import ToolClient

logger = get_logger(__name__)

ClientFactory = Callable[[MCPConfig], ToolClient]


def split_qualified_name(qualified_name: str) -> tuple[str, str]:
    """Split a qualified tool name on the first separator.

    Args:
        qualified_name: Name of the form ``<server>--<tool>``

    Returns:
        Tuple of (server name, tool name)

    Raises:
        MalformedToolNameError: If the separator is missing
    """
    server, sep, tool = qualified_name.partition(QUALIFIED_NAME_SEPARATOR)
    if not sep:
        raise MalformedToolNameError(qualified_name)
    return server, tool


class ToolRegistry:
    """Connected MCP servers of one agent and their qualified tools."""

    def __init__(self) -> None:
        self.clients: dict[str, ToolClient] = {}
        self.tools: dict[str, ToolDescriptor] = {}

    @classmethod
    async def create(
        cls,
        configs: Iterable[MCPConfig],
        client_factory: ClientFactory = ToolClient,
    ) -> "ToolRegistry":
        """Connect one client per server configuration.

        Configurations repeating an earlier server name are skipped.

        Args:
            configs: MCP server configurations
            client_factory: Builds an unconnected client from a configuration

        Returns:
            Populated registry

        Raises:
            ToolConnectionError: If any server cannot be connected or listed;
                clients connected so far are closed first
        """
        registry = cls()
        for config in configs:
            if config.name in registry.clients:
                logger.info(f"Skipping duplicate MCP server: {config.name}")
                continue

            client = client_factory(config)
            try:
                await client.connect()
            except ToolConnectionError:
                await registry.close()
                raise

            try:
                await registry.add_client(client)
            except InvocationError as e:
                await client.close()
                await registry.close()
                raise ToolConnectionError(config.name, f"tool listing failed: {e}") from e

        logger.info(f"Tool registry ready: {len(registry.clients)} servers, {len(registry.tools)} tools")
        return registry

    async def add_client(self, client: ToolClient) -> None:
        """Register a connected client and its renamed tools.

        Args:
            client: Connected tool client
        """
        self.clients[client.name] = client
        for tool in await client.list_tools():
            qualified = tool.qualified(client.name)
            self.tools[qualified.name] = qualified
            logger.debug(f"Registered tool: {qualified.name}", extra={"tool": qualified.name})

    def all_tools(self) -> list[ToolDescriptor]:
        """List all qualified tools in registration order."""
        return list(self.tools.values())

    def filter_tools(self, allowed: Iterable[str]) -> list[ToolDescriptor]:
        """List the tools named in an allow-list.

        Args:
            allowed: Qualified tool names; empty means no restriction

        Returns:
            Matching tools in registration order
        """
        allowed = set(allowed)
        if not allowed:
            return self.all_tools()

        unknown = allowed - self.tools.keys()
        if unknown:
            logger.warning(f"Allow-listed tools not provided by any server: {sorted(unknown)}")
        return [tool for name, tool in self.tools.items() if name in allowed]

    def get_tool(self, qualified_name: str) -> Optional[ToolDescriptor]:
        return self.tools.get(qualified_name)

    async def dispatch(self, qualified_name: str, arguments_json: str, caller: CallerContext) -> ToolResult:
        """Route a qualified tool call to its server.

        Args:
            qualified_name: ``<server>--<tool>`` as emitted by the model
            arguments_json: JSON object text with the arguments
            caller: Caller identity

        Returns:
            Tool result

        Raises:
            MalformedToolNameError: If the name has no separator
            UnknownServerError: If no server has the name's prefix
            InvocationError: If the call itself fails
        """
        server_name, tool_name = split_qualified_name(qualified_name)
        client = self.clients.get(server_name)
        if client is None:
            raise UnknownServerError(qualified_name, server_name)
        return await client.invoke(tool_name, arguments_json, caller)

    async def close(self) -> None:
        """Close all server connections."""
        for name, client in self.clients.items():
            try:
                await client.close()
            except (AgentFlowError, OSError) as e:
                logger.error(f"Error disconnecting from {name}: {e}")

        self.clients.clear()
        self.tools.clear()
