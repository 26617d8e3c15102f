"""Unit tests for stream events and observers."""

import asyncio
import json

import pytest

from agent_flow.streaming import CallbackObserver, StreamChannel, StreamEvent, emit_to


class TestStreamEvent:
    """Tests for StreamEvent."""

    def test_constructors(self):
        assert StreamEvent.text_delta("Hi").type == "text_delta"
        assert StreamEvent.thinking_delta("hmm").content == "hmm"
        complete = StreamEvent.complete(session_id="s1", turn_count=2)
        assert complete.data == {"session_id": "s1", "turn_count": 2}
        error = StreamEvent.error("boom", kind="AgentError")
        assert (error.type, error.content, error.data) == ("error", "boom", {"kind": "AgentError"})

    def test_to_sse(self):
        frame = StreamEvent.text_delta("Hi").to_sse()

        assert frame.startswith("data: ")
        assert frame.endswith("\n\n")
        assert json.loads(frame[len("data: "):]) == {"type": "text_delta", "content": "Hi", "data": {}}


class TestObservers:
    """Tests for observer implementations."""

    @pytest.mark.asyncio
    async def test_callback_observer_sync_and_async(self):
        seen = []

        async def async_callback(event):
            seen.append(("async", event.content))

        await CallbackObserver(lambda e: seen.append(("sync", e.content))).emit(StreamEvent.text_delta("a"))
        await CallbackObserver(async_callback).emit(StreamEvent.text_delta("b"))

        assert seen == [("sync", "a"), ("async", "b")]

    @pytest.mark.asyncio
    async def test_emit_to_none(self):
        await emit_to(None, StreamEvent.text_delta("ignored"))

    @pytest.mark.asyncio
    async def test_channel_delivers_in_order(self):
        channel = StreamChannel()

        async def produce():
            for text in ("a", "b", "c"):
                await channel.emit(StreamEvent.text_delta(text))
            await channel.close()

        producer = asyncio.create_task(produce())
        received = [event.content async for event in channel]
        await producer

        assert received == ["a", "b", "c"]
        assert channel.closed

    @pytest.mark.asyncio
    async def test_emit_after_close(self):
        channel = StreamChannel()
        await channel.close()
        await channel.close()

        with pytest.raises(RuntimeError, match="closed"):
            await channel.emit(StreamEvent.text_delta("late"))
