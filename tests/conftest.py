"""Test configuration and fixtures for agent-flow tests.

This module provides shared fixtures: configurations, a scripted model
backend, fake tool clients and a ready session manager.
"""

import json
from typing import Any, Callable, Optional, Union

import pytest

from agent_flow.agent import Agent
from agent_flow.config.schemas import AgentConfig, AgentFlowConfig, MCPConfig
from agent_flow.errors import InvocationError, ToolConnectionError
from agent_flow.flow import FlowGraph
from agent_flow.llm import OpenAIBackend
from agent_flow.models import (
    CallerContext,
    FunctionCall,
    HistoryMessage,
    OpenAIMessage,
    OpenAIToolCall,
    Session,
    StopReason,
    ToolDescriptor,
    ToolResult,
)
from agent_flow.session import InMemoryHistoryStore, SessionManager
from agent_flow.streaming import StreamEvent, StreamObserver, emit_to
from agent_flow.tools import ToolRegistry

Step = Union[tuple[HistoryMessage, StopReason], Exception]


def assistant_text(text: str) -> OpenAIMessage:
    return OpenAIMessage(role="assistant", content=text)


def assistant_tool_calls(*calls: tuple[str, str, dict[str, Any]]) -> OpenAIMessage:
    """Build an assistant message requesting (call id, qualified name, arguments) calls."""
    return OpenAIMessage(
        role="assistant",
        tool_calls=[
            OpenAIToolCall(id=call_id, function=FunctionCall(name=name, arguments=json.dumps(args)))
            for call_id, name, args in calls
        ],
    )


class ScriptedBackend(OpenAIBackend):
    """OpenAI backend whose completions come from a script instead of the network.

    Each step is either a (message, stop reason) pair or an exception to raise.
    When ``repeat`` is set, the last step is replayed forever.
    """

    def __init__(self, config: AgentConfig, steps: list[Step], repeat: bool = False) -> None:
        super().__init__(config, client=None)
        self.steps = list(steps)
        self.repeat = repeat
        self.calls: list[dict[str, Any]] = []

    async def complete(
        self,
        system_prompt: str,
        tools: list[ToolDescriptor],
        history: list[HistoryMessage],
        observer: Optional[StreamObserver] = None,
    ) -> tuple[HistoryMessage, StopReason]:
        self.calls.append({"system_prompt": system_prompt, "tools": tools, "history": list(history)})
        if not self.steps:
            raise AssertionError("scripted backend ran out of steps")
        step = self.steps[0] if self.repeat and len(self.steps) == 1 else self.steps.pop(0)
        if isinstance(step, Exception):
            raise step
        message, stop_reason = step
        if message.content:
            await emit_to(observer, StreamEvent.text_delta(message.content))
        return message, stop_reason


class FakeToolClient:
    """In-process stand-in for a connected ToolClient."""

    def __init__(
        self,
        config: MCPConfig,
        tools: Optional[list[str]] = None,
        handler: Optional[Callable[[str, dict[str, Any]], ToolResult]] = None,
        fail_connect: bool = False,
    ) -> None:
        self.config = config
        self.tool_names = tools if tools is not None else ["hello_world"]
        self.handler = handler
        self.fail_connect = fail_connect
        self.connected = False
        self.closed = False
        self.invocations: list[tuple[str, dict[str, Any], CallerContext]] = []

    @property
    def name(self) -> str:
        return self.config.name

    def is_connected(self) -> bool:
        return self.connected

    async def connect(self) -> "FakeToolClient":
        if self.fail_connect:
            raise ToolConnectionError(self.name, "connection refused")
        self.connected = True
        return self

    async def list_tools(self) -> list[ToolDescriptor]:
        return [
            ToolDescriptor(name=name, description=f"{name} tool", server=self.name, original_name=name)
            for name in self.tool_names
        ]

    async def invoke(self, tool_name: str, arguments_json: str, caller: CallerContext) -> ToolResult:
        if not self.connected:
            raise InvocationError(f"Not connected to MCP server '{self.name}'")
        arguments = json.loads(arguments_json) if arguments_json else {}
        self.invocations.append((tool_name, arguments, caller))
        if self.handler is not None:
            return self.handler(tool_name, arguments)
        return ToolResult(content=[f"{tool_name} ok"])

    async def close(self) -> None:
        self.closed = True
        self.connected = False


def stdio_config(name: str) -> MCPConfig:
    return MCPConfig(name=name, protocol="stdio", command="python3", args=["server.py"])


@pytest.fixture
def agent_config() -> AgentConfig:
    """Agent configuration with one stdio tool server."""
    return AgentConfig(
        systemPrompt="You are a helpful assistant.",
        modelId="test-model",
        mcpServers=[stdio_config("demo")],
    )


@pytest.fixture
def flow_config(agent_config) -> AgentFlowConfig:
    """Single-agent flow: start -> assistant_node."""
    return AgentFlowConfig.model_validate(
        {
            "agents": {"assistant": agent_config},
            "nodes": [
                {"id": "start", "type": "start", "next": "assistant_node"},
                {"id": "assistant_node", "type": "agent", "agentName": "assistant"},
            ],
        }
    )


@pytest.fixture
def flow_data() -> dict[str, Any]:
    """Raw flow document using the camelCase keys of stored flows."""
    return {
        "agents": {
            "assistant": {
                "systemPrompt": "You are a helpful assistant.",
                "provider": "openai",
                "modelId": "openai/gpt-4o-mini",
                "maxTokens": 512,
                "mcpServers": [
                    {"name": "demo", "protocol": "stdio", "command": "python3", "args": ["server.py"]}
                ],
            }
        },
        "nodes": [
            {"id": "start", "type": "start", "next": "assistant_node"},
            {"id": "assistant_node", "type": "agent", "agentName": "assistant"},
        ],
    }


@pytest.fixture
def store() -> InMemoryHistoryStore:
    return InMemoryHistoryStore()


@pytest.fixture
def session() -> Session:
    return Session(id="session-1", created_by="user-1", agent_flow_id="flow-1")


@pytest.fixture
def make_manager(flow_config, store, session):
    """Factory building a SessionManager around a scripted backend and fake tools.

    Returns:
        async callable (steps, tool_handler=None, repeat=False) -> SessionManager
    """

    async def _make(
        steps: list[Step],
        tool_handler: Optional[Callable[[str, dict[str, Any]], ToolResult]] = None,
        repeat: bool = False,
    ) -> SessionManager:
        await store.create_session(session)
        config = flow_config.agents["assistant"]
        registry = await ToolRegistry.create(
            config.mcp_servers,
            client_factory=lambda cfg: FakeToolClient(cfg, tools=["hello_world", "add_numbers"], handler=tool_handler),
        )
        agent = Agent("assistant", config, ScriptedBackend(config, steps, repeat=repeat), registry)
        return SessionManager(session, FlowGraph(flow_config), {"assistant": agent}, store)

    return _make
