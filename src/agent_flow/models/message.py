"""Provider-tagged message payloads for agent-flow.

A history entry stores exactly one provider-specific message representation.
Each variant carries a literal ``provider`` tag; ``parse_history_message``
and ``message_variant_for`` fail loudly on tags with no registered variant.
Only the OpenAI chat-completions variant exists today.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field


class FunctionCall(BaseModel):
    """Function name and raw JSON argument string of a tool call."""

    name: str = Field(default="", description="Qualified tool name")
    arguments: str = Field(default="", description="Arguments as a JSON string")


class OpenAIToolCall(BaseModel):
    """A tool call requested by the assistant.

    Attributes:
        id: Provider call id, echoed back on the matching tool result
        type: Always "function"
        function: Name and arguments
    """

    id: str = Field(..., description="Provider call id")
    type: Literal["function"] = "function"
    function: FunctionCall = Field(default_factory=FunctionCall)


class OpenAIToolResult(BaseModel):
    """The text result of one tool call, tagged with its originating call id."""

    tool_call_id: str = Field(..., description="Id of the originating tool call")
    name: str = Field(..., description="Qualified tool name")
    content: list[str] = Field(default_factory=list, description="Text content blocks")
    is_error: bool = Field(default=False, description="Whether the tool reported an error")

    @property
    def text(self) -> str:
        return "\n".join(self.content)


class OpenAIMessage(BaseModel):
    """OpenAI chat-completions message variant.

    A ``tool`` role message holds every result of one tool step and expands
    into one API message per result.

    Attributes:
        provider: Variant tag
        role: Chat role
        content: Accumulated text
        reasoning: Accumulated reasoning ("thinking") text, never sent back
        tool_calls: Tool calls requested by the assistant
        tool_results: Results of a tool step
    """

    provider: Literal["openai"] = "openai"
    role: Literal["system", "user", "assistant", "tool"] = Field(..., description="Chat role")
    content: str = Field(default="", description="Accumulated text")
    reasoning: str = Field(default="", description="Accumulated reasoning text")
    tool_calls: list[OpenAIToolCall] = Field(default_factory=list, description="Requested tool calls")
    tool_results: list[OpenAIToolResult] = Field(default_factory=list, description="Tool step results")

    def to_openai_params(self) -> list[dict[str, Any]]:
        """Convert to chat-completions request messages.

        Returns:
            One message, or one message per tool result for the tool role
        """
        if self.role == "tool":
            return [
                {
                    "role": "tool",
                    "tool_call_id": result.tool_call_id,
                    "content": result.text,
                }
                for result in self.tool_results
            ]

        if self.role == "assistant" and self.tool_calls:
            return [
                {
                    "role": "assistant",
                    "content": self.content or None,
                    "tool_calls": [call.model_dump() for call in self.tool_calls],
                }
            ]

        return [{"role": self.role, "content": self.content}]


# Tagged union of provider payloads. New variants are added to both the
# alias and MESSAGE_VARIANTS.
HistoryMessage = OpenAIMessage

MESSAGE_VARIANTS: dict[str, type[BaseModel]] = {
    "openai": OpenAIMessage,
}


def message_variant_for(provider: str) -> type[BaseModel]:
    """Get the message variant class for a provider tag.

    Args:
        provider: Provider tag

    Returns:
        Variant class

    Raises:
        ValueError: If no variant exists for the tag
    """
    try:
        return MESSAGE_VARIANTS[provider]
    except KeyError:
        raise ValueError(f"no message variant for provider: {provider!r}") from None


def parse_history_message(data: dict[str, Any]) -> HistoryMessage:
    """Validate raw data into the variant named by its ``provider`` tag.

    Args:
        data: Raw message data

    Returns:
        Parsed message variant

    Raises:
        ValueError: If the tag is missing or unknown
    """
    provider = data.get("provider")
    if provider is None:
        raise ValueError("message payload has no provider tag")
    return message_variant_for(provider).model_validate(data)
