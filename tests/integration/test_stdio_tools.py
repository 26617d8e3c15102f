"""Tool calls against the demo stdio MCP server in a real subprocess."""

import sys
from pathlib import Path

import pytest

from agent_flow.agent import Agent
from agent_flow.config import AgentConfig, MCPConfig
from agent_flow.errors import InvocationError
from agent_flow.flow import FlowGraph
from agent_flow.models import CallerContext, StopReason
from agent_flow.session import SessionManager
from agent_flow.tools import ToolClient, ToolRegistry
from agent_flow.tools import mcp_client

from conftest import ScriptedBackend, assistant_text, assistant_tool_calls

pytestmark = pytest.mark.integration

DEMO_SERVER = Path(__file__).resolve().parents[2] / "examples" / "demo" / "tools_server.py"
CALLER = CallerContext(user_id="user-1", session_id="session-1")


@pytest.fixture
def demo_config():
    return MCPConfig(name="demo", protocol="stdio", command=sys.executable, args=[str(DEMO_SERVER)], timeout=10)


@pytest.mark.asyncio
async def test_registry_lists_and_calls_demo_tools(demo_config):
    registry = await ToolRegistry.create([demo_config])
    try:
        assert [tool.name for tool in registry.all_tools()] == ["demo--hello_world", "demo--add_numbers"]
        assert registry.clients["demo"].server_info["name"] == "demo-tools"

        hello = await registry.dispatch("demo--hello_world", '{"name": "Ada"}', CALLER)
        assert hello.content == ["Hello, Ada!"]

        total = await registry.dispatch("demo--add_numbers", '{"a": 2, "b": 3}', CALLER)
        assert total.structured_content == {"sum": 5.0}
        assert total.content == ['{"sum": 5.0}']

        invalid = await registry.dispatch("demo--add_numbers", '{"a": 2}', CALLER)
        assert invalid.is_error is True
    finally:
        await registry.close()

    assert registry.clients == {}


@pytest.mark.asyncio
async def test_turn_with_real_tool_server(demo_config, flow_config, store, session):
    config = AgentConfig(modelId="test-model", mcpServers=[demo_config])
    backend = ScriptedBackend(
        config,
        [
            (assistant_tool_calls(("call_1", "demo--hello_world", {"name": "Ada"})), StopReason.TOOL_CALL),
            (assistant_text("I said hello to Ada."), StopReason.AGENT_DONE),
        ],
    )
    agent = Agent("assistant", config, backend, await ToolRegistry.create(config.mcp_servers))
    await store.create_session(session)

    async with SessionManager(session, FlowGraph(flow_config), {"assistant": agent}, store) as manager:
        entries = await manager.run_turn("greet Ada")

    assert entries[2].content.tool_results[0].content == ["Hello, Ada!"]
    assert entries[-1].stop_reason is StopReason.AGENT_DONE
    assert not agent.registry.clients


# Answers every tools/call with a text block of the requested size.
BULK_OUTPUT_SERVER = """
import json, sys
for line in sys.stdin:
    request = json.loads(line)
    if "id" not in request:
        continue
    if request["method"] == "initialize":
        result = {"protocolVersion": "2025-03-26", "capabilities": {}, "serverInfo": {"name": "bulk"}}
    else:
        size = request["params"]["arguments"]["size"]
        result = {"content": [{"type": "text", "text": "x" * size}]}
    print(json.dumps({"jsonrpc": "2.0", "id": request["id"], "result": result}), flush=True)
"""


@pytest.fixture
def bulk_config():
    return MCPConfig(name="bulk", protocol="stdio", command=sys.executable, args=["-c", BULK_OUTPUT_SERVER], timeout=10)


@pytest.mark.asyncio
async def test_tool_output_larger_than_default_stream_buffer(bulk_config):
    client = await ToolClient(bulk_config).connect()
    try:
        large = await client.invoke("dump", '{"size": 300000}', CALLER)
        small = await client.invoke("dump", '{"size": 10}', CALLER)
    finally:
        await client.close()

    assert len(large.content[0]) == 300000
    assert small.content == ["x" * 10]


@pytest.mark.asyncio
async def test_oversized_line_fails_fast_and_disconnects(bulk_config, monkeypatch):
    monkeypatch.setattr(mcp_client, "STDIO_READ_LIMIT", 1024)
    client = await ToolClient(bulk_config).connect()
    try:
        with pytest.raises(InvocationError, match="reading from MCP server 'bulk' failed"):
            await client.invoke("dump", '{"size": 5000}', CALLER)

        assert not client.is_connected()
        with pytest.raises(InvocationError, match="Not connected"):
            await client.invoke("dump", '{"size": 10}', CALLER)
    finally:
        await client.close()
