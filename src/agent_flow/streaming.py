"""Stream events delivered to inbound drivers while a turn runs.

Backends report text and reasoning fragments to a StreamObserver as they
arrive; the session manager reports the end of a turn. StreamChannel adapts
the observer interface to an async iterator backed by an asyncio.Queue.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Literal, Optional

from pydantic import BaseModel, Field

EventType = Literal["text_delta", "thinking_delta", "complete", "error"]


class StreamEvent(BaseModel):
    """One event of a turn stream.

    Attributes:
        type: Event type
        content: Text fragment (deltas) or error message
        data: Extra payload (session id, turn count...)
    """

    type: EventType = Field(..., description="Event type")
    content: str = Field(default="", description="Text fragment or message")
    data: dict[str, Any] = Field(default_factory=dict, description="Extra payload")

    @classmethod
    def text_delta(cls, text: str) -> "StreamEvent":
        return cls(type="text_delta", content=text)

    @classmethod
    def thinking_delta(cls, text: str) -> "StreamEvent":
        return cls(type="thinking_delta", content=text)

    @classmethod
    def complete(cls, **data: Any) -> "StreamEvent":
        return cls(type="complete", data=data)

    @classmethod
    def error(cls, message: str, **data: Any) -> "StreamEvent":
        return cls(type="error", content=message, data=data)

    def to_sse(self) -> str:
        """Render as a Server-Sent Events ``data:`` frame."""
        return f"data: {self.model_dump_json()}\n\n"


class StreamObserver(ABC):
    """Receives stream events in arrival order."""

    @abstractmethod
    async def emit(self, event: StreamEvent) -> None:
        """Handle one event."""


class CallbackObserver(StreamObserver):
    """Observer forwarding events to a plain callable."""

    def __init__(self, callback) -> None:
        self.callback = callback

    async def emit(self, event: StreamEvent) -> None:
        result = self.callback(event)
        if asyncio.iscoroutine(result):
            await result


class StreamChannel(StreamObserver):
    """Queue-backed observer consumed as an async iterator.

    The producer emits events and calls ``close()`` when done; iteration
    stops after the queued events are drained.
    """

    _CLOSED = object()

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    async def emit(self, event: StreamEvent) -> None:
        if self._closed:
            raise RuntimeError("stream channel is closed")
        await self._queue.put(event)

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            await self._queue.put(self._CLOSED)

    @property
    def closed(self) -> bool:
        return self._closed

    async def __aiter__(self) -> AsyncIterator[StreamEvent]:
        while True:
            item = await self._queue.get()
            if item is self._CLOSED:
                return
            yield item


async def emit_to(observer: Optional[StreamObserver], event: StreamEvent) -> None:
    """Emit to an optional observer."""
    if observer is not None:
        await observer.emit(event)
