"""OpenAI-compatible streaming completion backend.

Works against api.openai.com and OpenRouter through ``openai.AsyncOpenAI``.
Streamed deltas are accumulated into one assistant message: text is
concatenated, tool-call fragments are merged by their index and reasoning
fragments (OpenRouter ``reasoning`` field) are kept apart as thinking.
"""

from typing import Any, Optional

import openai
from openai import AsyncOpenAI

from ..config.schemas import AgentConfig
from ..errors import ProviderError
from ..models import (
    FunctionCall,
    HistoryMessage,
    ModelProvider,
    OpenAIMessage,
    OpenAIToolCall,
    OpenAIToolResult,
    StopReason,
    ToolDescriptor,
    ToolResult,
)
from ..streaming import StreamEvent, StreamObserver, emit_to
from ..utils import generate_uuid, get_logger
from .base import ModelBackend, PendingToolCall

logger = get_logger(__name__)

FINISH_REASON_MAP = {
    "length": StopReason.MAX_TOKENS,
    "tool_calls": StopReason.TOOL_CALL,
    "stop": StopReason.AGENT_DONE,
}


def map_finish_reason(reason: Optional[str]) -> StopReason:
    """Map a chat-completions finish reason to a stop reason.

    Args:
        reason: Provider finish reason, None if the stream never sent one

    Returns:
        Stop reason; UNKNOWN for anything unrecognised
    """
    if reason is None:
        return StopReason.UNKNOWN
    return FINISH_REASON_MAP.get(reason, StopReason.UNKNOWN)


class _ToolCallAccumulator:
    """Merges streamed tool-call fragments keyed by index."""

    def __init__(self) -> None:
        self._calls: dict[int, dict[str, str]] = {}

    def add(self, fragment: Any) -> None:
        call = self._calls.setdefault(fragment.index, {"id": "", "name": "", "arguments": ""})
        if fragment.id:
            call["id"] = fragment.id
        function = fragment.function
        if function is not None:
            if function.name:
                call["name"] += function.name
            if function.arguments:
                call["arguments"] += function.arguments

    def build(self) -> list[OpenAIToolCall]:
        return [
            OpenAIToolCall(
                id=call["id"] or f"call_{generate_uuid()}",
                function=FunctionCall(name=call["name"], arguments=call["arguments"]),
            )
            for _, call in sorted(self._calls.items())
        ]


class OpenAIBackend(ModelBackend):
    """Chat-completions streaming driver."""

    provider = ModelProvider.OPENAI

    def __init__(self, config: AgentConfig, client: AsyncOpenAI) -> None:
        """Initialize the backend.

        Args:
            config: Agent configuration
            client: Shared provider client
        """
        super().__init__(config)
        self.client = client

    def human_message(self, text: str) -> HistoryMessage:
        return OpenAIMessage(role="user", content=text)

    def build_request(
        self,
        system_prompt: str,
        tools: list[ToolDescriptor],
        history: list[HistoryMessage],
    ) -> dict[str, Any]:
        """Build the streaming request parameters.

        Messages of other provider variants are left out.

        Args:
            system_prompt: System instruction
            tools: Tools offered to the model
            history: Full transcript

        Returns:
            Keyword arguments for ``chat.completions.create``
        """
        messages: list[dict[str, Any]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        for message in history:
            if not self.owns(message):
                logger.debug(f"Skipping {message.provider} message in OpenAI request")
                continue
            messages.extend(message.to_openai_params())

        params: dict[str, Any] = {
            "model": self.config.model_id,
            "messages": messages,
            "stream": True,
        }
        if tools:
            params["tools"] = [tool.to_openai_tool() for tool in tools]
            params["tool_choice"] = "auto"
        if self.config.max_tokens is not None:
            params["max_tokens"] = self.config.max_tokens
        if self.config.temperature is not None:
            params["temperature"] = self.config.temperature
        if self.config.top_p is not None:
            params["top_p"] = self.config.top_p

        extra_body: dict[str, Any] = {}
        if self.config.top_k is not None:
            extra_body["top_k"] = self.config.top_k
        if self.config.thinking_tokens is not None:
            extra_body["reasoning"] = {"max_tokens": self.config.thinking_tokens}
        if extra_body:
            params["extra_body"] = extra_body
        return params

    async def complete(
        self,
        system_prompt: str,
        tools: list[ToolDescriptor],
        history: list[HistoryMessage],
        observer: Optional[StreamObserver] = None,
    ) -> tuple[HistoryMessage, StopReason]:
        """Run one streaming completion.

        Args:
            system_prompt: System instruction
            tools: Tools offered to the model
            history: Full transcript
            observer: Receives deltas in arrival order

        Returns:
            Tuple of (assistant message, stop reason)

        Raises:
            ProviderError: If the request or the stream fails
        """
        params = self.build_request(system_prompt, tools, history)
        text_parts: list[str] = []
        reasoning_parts: list[str] = []
        tool_calls = _ToolCallAccumulator()
        finish_reason: Optional[str] = None

        logger.debug(f"Streaming completion from {self.config.model_id} with {len(params['messages'])} messages")
        try:
            stream = await self.client.chat.completions.create(**params)
            async for chunk in stream:
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                delta = choice.delta

                if delta is not None:
                    reasoning = getattr(delta, "reasoning", None)
                    if reasoning:
                        reasoning_parts.append(reasoning)
                        await emit_to(observer, StreamEvent.thinking_delta(reasoning))
                    if delta.content:
                        text_parts.append(delta.content)
                        await emit_to(observer, StreamEvent.text_delta(delta.content))
                    for fragment in delta.tool_calls or []:
                        tool_calls.add(fragment)

                if choice.finish_reason:
                    finish_reason = choice.finish_reason
        except openai.OpenAIError as e:
            partial = map_finish_reason(finish_reason)
            logger.error(f"Completion from {self.config.model_id} failed: {e}")
            raise ProviderError(f"completion failed: {e}", stop_reason=partial.value) from e

        stop_reason = map_finish_reason(finish_reason)
        message = OpenAIMessage(
            role="assistant",
            content="".join(text_parts),
            reasoning="".join(reasoning_parts),
            tool_calls=tool_calls.build(),
        )
        logger.debug(
            f"Completion finished: {finish_reason} -> {stop_reason.value}",
            extra={"stop_reason": stop_reason.value},
        )
        return message, stop_reason

    def pending_tool_calls(self, message: HistoryMessage) -> list[PendingToolCall]:
        if not self.owns(message) or message.role != "assistant":
            return []
        return [
            PendingToolCall(id=call.id, name=call.function.name, arguments=call.function.arguments)
            for call in message.tool_calls
        ]

    def tool_results_message(self, results: list[tuple[PendingToolCall, ToolResult]]) -> HistoryMessage:
        return OpenAIMessage(
            role="tool",
            tool_results=[
                OpenAIToolResult(
                    tool_call_id=call.id,
                    name=call.name,
                    content=result.content,
                    is_error=result.is_error,
                )
                for call, result in results
            ],
        )
