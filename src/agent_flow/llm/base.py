"""Model backend capability interface.

A backend is chosen once per agent from its provider selector and owns
everything that depends on the provider's message format: building the
human message, running a completion, reading the tool calls out of an
assistant message and packaging tool results.
"""

from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel, Field

from ..config.schemas import AgentConfig
from ..models import HistoryMessage, ModelProvider, StopReason, ToolDescriptor, ToolResult
from ..streaming import StreamObserver


class PendingToolCall(BaseModel):
    """A tool call awaiting execution, independent of provider format."""

    id: str = Field(..., description="Provider call id")
    name: str = Field(..., description="Qualified tool name")
    arguments: str = Field(default="", description="Arguments as a JSON string")


class ModelBackend(ABC):
    """Provider-specific completion and message handling.

    Attributes:
        provider: Provider tag of the messages this backend reads and writes
        config: Agent configuration (model id and sampling parameters)
    """

    provider: ModelProvider

    def __init__(self, config: AgentConfig) -> None:
        self.config = config

    def owns(self, message: HistoryMessage) -> bool:
        """Whether a history message is of this backend's variant."""
        return message.provider == self.provider.value

    @abstractmethod
    def human_message(self, text: str) -> HistoryMessage:
        """Wrap human text as a user message of this backend's variant."""

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        tools: list[ToolDescriptor],
        history: list[HistoryMessage],
        observer: Optional[StreamObserver] = None,
    ) -> tuple[HistoryMessage, StopReason]:
        """Run one streaming completion over the transcript.

        Args:
            system_prompt: System instruction
            tools: Tools offered to the model
            history: Full transcript, oldest first
            observer: Receives text and reasoning deltas as they arrive

        Returns:
            Tuple of (assistant message, stop reason)

        Raises:
            ProviderError: If the provider call fails
        """

    @abstractmethod
    def pending_tool_calls(self, message: HistoryMessage) -> list[PendingToolCall]:
        """Extract the tool calls requested by an assistant message."""

    @abstractmethod
    def tool_results_message(self, results: list[tuple[PendingToolCall, ToolResult]]) -> HistoryMessage:
        """Package the results of one tool step into a single message.

        Args:
            results: Each call paired with its result, in call order

        Returns:
            Tool message where every result carries its call id
        """
