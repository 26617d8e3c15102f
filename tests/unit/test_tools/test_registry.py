"""Unit tests for the tool registry."""

import pytest

from agent_flow.errors import (
    DispatchError,
    InvocationError,
    MalformedToolNameError,
    ToolConnectionError,
    UnknownServerError,
)
from agent_flow.models import CallerContext, ToolResult
from agent_flow.tools import ToolRegistry, split_qualified_name

from conftest import FakeToolClient, stdio_config

CALLER = CallerContext(user_id="user-1", session_id="session-1")


class ListingFailsClient(FakeToolClient):
    async def list_tools(self):
        raise InvocationError("tools/list timed out")


class TestSplitQualifiedName:
    """Tests for qualified name parsing."""

    def test_splits_on_first_separator(self):
        assert split_qualified_name("demo--hello_world") == ("demo", "hello_world")
        assert split_qualified_name("demo--a--b") == ("demo", "a--b")

    def test_missing_separator(self):
        with pytest.raises(MalformedToolNameError) as exc_info:
            split_qualified_name("hello_world")
        assert exc_info.value.kind == "malformed_name"
        assert exc_info.value.tool_name == "hello_world"


class TestToolRegistry:
    """Tests for ToolRegistry."""

    @pytest.mark.asyncio
    async def test_same_tool_name_on_two_servers(self):
        clients = {}

        def factory(config):
            clients[config.name] = FakeToolClient(config, tools=["search"])
            return clients[config.name]

        registry = await ToolRegistry.create([stdio_config("web"), stdio_config("docs")], client_factory=factory)

        assert [tool.name for tool in registry.all_tools()] == ["web--search", "docs--search"]
        assert registry.get_tool("docs--search").original_name == "search"

        await registry.dispatch("docs--search", '{"q": "x"}', CALLER)

        assert clients["docs"].invocations == [("search", {"q": "x"}, CALLER)]
        assert clients["web"].invocations == []

    @pytest.mark.asyncio
    async def test_duplicate_server_names_skipped(self):
        created = []

        def factory(config):
            created.append(config.name)
            return FakeToolClient(config)

        registry = await ToolRegistry.create([stdio_config("demo"), stdio_config("demo")], client_factory=factory)

        assert created == ["demo"]
        assert list(registry.clients) == ["demo"]

    @pytest.mark.asyncio
    async def test_connection_failure_closes_connected_clients(self):
        clients = []

        def factory(config):
            client = FakeToolClient(config, fail_connect=config.name == "broken")
            clients.append(client)
            return client

        with pytest.raises(ToolConnectionError) as exc_info:
            await ToolRegistry.create([stdio_config("ok"), stdio_config("broken")], client_factory=factory)

        assert exc_info.value.server_name == "broken"
        assert clients[0].closed is True

    @pytest.mark.asyncio
    async def test_listing_failure_is_connection_error(self):
        clients = []

        def factory(config):
            client = ListingFailsClient(config)
            clients.append(client)
            return client

        with pytest.raises(ToolConnectionError, match="tool listing failed"):
            await ToolRegistry.create([stdio_config("demo")], client_factory=factory)

        assert clients[0].closed is True

    @pytest.mark.asyncio
    async def test_dispatch_unknown_server(self):
        registry = await ToolRegistry.create([stdio_config("demo")], client_factory=FakeToolClient)

        with pytest.raises(UnknownServerError) as exc_info:
            await registry.dispatch("other--hello_world", "{}", CALLER)

        assert isinstance(exc_info.value, DispatchError)
        assert exc_info.value.server_name == "other"
        assert "MCP client not found: other" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_dispatch_malformed_name(self):
        registry = await ToolRegistry.create([stdio_config("demo")], client_factory=FakeToolClient)

        with pytest.raises(MalformedToolNameError):
            await registry.dispatch("hello_world", "{}", CALLER)

    @pytest.mark.asyncio
    async def test_dispatch_returns_result(self):
        def handler(tool_name, arguments):
            return ToolResult(content=[f"Hello, {arguments['name']}!"])

        registry = await ToolRegistry.create(
            [stdio_config("demo")], client_factory=lambda config: FakeToolClient(config, handler=handler)
        )

        result = await registry.dispatch("demo--hello_world", '{"name": "Ada"}', CALLER)

        assert result.content == ["Hello, Ada!"]

    @pytest.mark.asyncio
    async def test_filter_tools(self):
        registry = await ToolRegistry.create(
            [stdio_config("demo")],
            client_factory=lambda config: FakeToolClient(config, tools=["hello_world", "add_numbers"]),
        )

        assert len(registry.filter_tools([])) == 2
        filtered = registry.filter_tools(["demo--add_numbers", "demo--missing"])
        assert [tool.name for tool in filtered] == ["demo--add_numbers"]

    @pytest.mark.asyncio
    async def test_close(self):
        registry = await ToolRegistry.create([stdio_config("demo")], client_factory=FakeToolClient)
        client = registry.clients["demo"]

        await registry.close()

        assert client.closed is True
        assert registry.clients == {}
        assert registry.all_tools() == []
