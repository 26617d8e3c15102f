"""Unit tests for the OpenAI-compatible model backend."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import openai
import pytest
from openai import AsyncOpenAI

from agent_flow.config import AgentConfig, ProviderSettings
from agent_flow.errors import ConfigError, ProviderError, UnsupportedProviderError
from agent_flow.llm import OpenAIBackend, PendingToolCall, create_backend, create_provider_client, map_finish_reason
from agent_flow.models import ModelProvider, OpenAIMessage, StopReason, ToolDescriptor, ToolResult
from agent_flow.streaming import CallbackObserver


def chunk(content=None, reasoning=None, tool_calls=None, finish_reason=None):
    delta = SimpleNamespace(content=content, reasoning=reasoning, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta, finish_reason=finish_reason)])


def fragment(index, id=None, name=None, arguments=None):
    return SimpleNamespace(index=index, id=id, function=SimpleNamespace(name=name, arguments=arguments))


def stream_of(*chunks, error=None):
    async def generate():
        for item in chunks:
            yield item
        if error is not None:
            raise error

    return generate()


@pytest.fixture
def config():
    return AgentConfig(systemPrompt="Be brief.", modelId="openai/gpt-4o-mini", maxTokens=256, temperature=0.2)


@pytest.fixture
def client():
    mock = MagicMock()
    mock.chat.completions.create = AsyncMock()
    return mock


class TestFinishReason:
    """Tests for finish reason mapping."""

    @pytest.mark.parametrize(
        "reason,expected",
        [
            ("length", StopReason.MAX_TOKENS),
            ("tool_calls", StopReason.TOOL_CALL),
            ("stop", StopReason.AGENT_DONE),
            ("content_filter", StopReason.UNKNOWN),
            (None, StopReason.UNKNOWN),
        ],
    )
    def test_mapping(self, reason, expected):
        assert map_finish_reason(reason) is expected


class TestBuildRequest:
    """Tests for request construction."""

    def test_messages_and_sampling(self, config, client):
        backend = OpenAIBackend(config, client)
        history = [OpenAIMessage(role="user", content="hello")]

        params = backend.build_request("Be brief.", [], history)

        assert params["model"] == "openai/gpt-4o-mini"
        assert params["stream"] is True
        assert params["messages"] == [
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "hello"},
        ]
        assert params["max_tokens"] == 256
        assert params["temperature"] == 0.2
        assert "tools" not in params
        assert "top_p" not in params
        assert "extra_body" not in params

    def test_tools_and_extras(self, config, client):
        config = config.model_copy(update={"top_k": 40, "thinking_tokens": 1024})
        backend = OpenAIBackend(config, client)
        tool = ToolDescriptor(name="demo--hello_world", description="Say hello")

        params = backend.build_request("", [tool], [])

        assert params["messages"] == []
        assert params["tools"][0]["function"]["name"] == "demo--hello_world"
        assert params["tool_choice"] == "auto"
        assert params["extra_body"] == {"top_k": 40, "reasoning": {"max_tokens": 1024}}


class TestComplete:
    """Tests for streaming completions."""

    @pytest.mark.asyncio
    async def test_text_stream(self, config, client):
        client.chat.completions.create.return_value = stream_of(
            chunk(content="Hel"),
            chunk(content="lo"),
            SimpleNamespace(choices=[]),
            chunk(finish_reason="stop"),
        )
        events = []
        backend = OpenAIBackend(config, client)

        message, stop_reason = await backend.complete("", [], [], observer=CallbackObserver(events.append))

        assert message.role == "assistant"
        assert message.content == "Hello"
        assert message.tool_calls == []
        assert stop_reason is StopReason.AGENT_DONE
        assert [(e.type, e.content) for e in events] == [("text_delta", "Hel"), ("text_delta", "lo")]

    @pytest.mark.asyncio
    async def test_tool_call_fragments_merged_by_index(self, config, client):
        client.chat.completions.create.return_value = stream_of(
            chunk(tool_calls=[fragment(0, id="call_a", name="demo--", arguments='{"na')]),
            chunk(tool_calls=[fragment(1, id="call_b", name="demo--add_numbers", arguments="")]),
            chunk(tool_calls=[fragment(0, name="hello_world", arguments='me": "Ada"}')]),
            chunk(tool_calls=[fragment(1, arguments='{"a": 1, "b": 2}')], finish_reason="tool_calls"),
        )
        backend = OpenAIBackend(config, client)

        message, stop_reason = await backend.complete("", [], [])

        assert stop_reason is StopReason.TOOL_CALL
        assert [(c.id, c.function.name, c.function.arguments) for c in message.tool_calls] == [
            ("call_a", "demo--hello_world", '{"name": "Ada"}'),
            ("call_b", "demo--add_numbers", '{"a": 1, "b": 2}'),
        ]

    @pytest.mark.asyncio
    async def test_missing_call_id_is_generated(self, config, client):
        client.chat.completions.create.return_value = stream_of(
            chunk(tool_calls=[fragment(0, name="demo--hello_world", arguments="{}")], finish_reason="tool_calls"),
        )
        backend = OpenAIBackend(config, client)

        message, _ = await backend.complete("", [], [])

        assert message.tool_calls[0].id.startswith("call_")

    @pytest.mark.asyncio
    async def test_reasoning_forwarded_as_thinking(self, config, client):
        client.chat.completions.create.return_value = stream_of(
            chunk(reasoning="2 + 2 "),
            chunk(reasoning="is 4"),
            chunk(content="4", finish_reason="stop"),
        )
        events = []
        backend = OpenAIBackend(config, client)

        message, _ = await backend.complete("", [], [], observer=CallbackObserver(events.append))

        assert message.reasoning == "2 + 2 is 4"
        assert message.content == "4"
        assert [e.type for e in events] == ["thinking_delta", "thinking_delta", "text_delta"]

    @pytest.mark.asyncio
    async def test_length_finish(self, config, client):
        client.chat.completions.create.return_value = stream_of(chunk(content="cut", finish_reason="length"))

        _, stop_reason = await OpenAIBackend(config, client).complete("", [], [])

        assert stop_reason is StopReason.MAX_TOKENS

    @pytest.mark.asyncio
    async def test_no_finish_reason(self, config, client):
        client.chat.completions.create.return_value = stream_of(chunk(content="dangling"))

        _, stop_reason = await OpenAIBackend(config, client).complete("", [], [])

        assert stop_reason is StopReason.UNKNOWN

    @pytest.mark.asyncio
    async def test_request_failure(self, config, client):
        client.chat.completions.create.side_effect = openai.OpenAIError("rate limited")

        with pytest.raises(ProviderError, match="rate limited") as exc_info:
            await OpenAIBackend(config, client).complete("", [], [])

        assert exc_info.value.stop_reason == "unknown"

    @pytest.mark.asyncio
    async def test_stream_failure_keeps_partial_stop_reason(self, config, client):
        client.chat.completions.create.return_value = stream_of(
            chunk(content="partial", finish_reason="length"),
            error=openai.OpenAIError("connection reset"),
        )

        with pytest.raises(ProviderError) as exc_info:
            await OpenAIBackend(config, client).complete("", [], [])

        assert exc_info.value.stop_reason == "max_tokens"
        assert isinstance(exc_info.value.__cause__, openai.OpenAIError)


class TestToolMessages:
    """Tests for tool call extraction and result packaging."""

    def test_pending_tool_calls(self, config, client):
        backend = OpenAIBackend(config, client)
        message = OpenAIMessage.model_validate(
            {
                "role": "assistant",
                "tool_calls": [{"id": "call_1", "function": {"name": "demo--hello_world", "arguments": "{}"}}],
            }
        )

        assert backend.pending_tool_calls(message) == [
            PendingToolCall(id="call_1", name="demo--hello_world", arguments="{}")
        ]
        assert backend.pending_tool_calls(OpenAIMessage(role="user", content="hi")) == []

    def test_tool_results_message(self, config, client):
        backend = OpenAIBackend(config, client)
        call = PendingToolCall(id="call_1", name="demo--hello_world", arguments="{}")

        message = backend.tool_results_message([(call, ToolResult(content=["Hello!"], is_error=True))])

        assert message.role == "tool"
        result = message.tool_results[0]
        assert (result.tool_call_id, result.name, result.content, result.is_error) == (
            "call_1",
            "demo--hello_world",
            ["Hello!"],
            True,
        )

    def test_human_message(self, config, client):
        message = OpenAIBackend(config, client).human_message("hi")
        assert message == OpenAIMessage(role="user", content="hi")


class TestFactory:
    """Tests for client and backend construction."""

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)

        with pytest.raises(ConfigError, match="OPENROUTER_API_KEY"):
            create_provider_client(ProviderSettings())

    def test_client_created(self, monkeypatch):
        monkeypatch.setenv("OPENROUTER_API_KEY", "sk-test")

        client = create_provider_client(ProviderSettings())

        assert isinstance(client, AsyncOpenAI)
        assert str(client.base_url).startswith("https://openrouter.ai/api/v1")

    def test_backend_selection(self, config, client):
        assert isinstance(create_backend(config, client), OpenAIBackend)

        anthropic = config.model_copy(update={"provider": ModelProvider.ANTHROPIC})
        with pytest.raises(UnsupportedProviderError):
            create_backend(anthropic, client)
