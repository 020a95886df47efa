"""Tests for the async EventBus and client lifecycle events."""

import asyncio

import httpx
import pytest
from conftest import RecordingTransport, collect, openai_sse, sse_response

from nspec_llm.cancellation import CancellationTokenSource
from nspec_llm.events.bus import WILDCARD, EventBus
from nspec_llm.llm.client import LMClient
from nspec_llm.llm.tool_calls import EXECUTION_TOOLS
from nspec_llm.types import ClientEvent, EventType


@pytest.fixture
def bus():
    return EventBus()


class TestSubscribeAndEmit:
    @pytest.mark.asyncio
    async def test_async_handler(self, bus: EventBus):
        received = []

        async def handler(event: ClientEvent):
            received.append(event)

        bus.subscribe(EventType.LLM_REQUEST, handler)
        ev = await bus.emit(EventType.LLM_REQUEST, backend="openai")

        assert len(received) == 1
        assert received[0] is ev
        assert ev.data == {"backend": "openai"}

    @pytest.mark.asyncio
    async def test_sync_handler(self, bus: EventBus):
        received = []
        bus.subscribe(EventType.LLM_DONE, received.append)
        await bus.emit(EventType.LLM_DONE)
        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_no_cross_delivery(self, bus: EventBus):
        received = []
        bus.subscribe(EventType.LLM_REQUEST, received.append)
        await bus.emit(EventType.LLM_DONE)
        assert received == []

    @pytest.mark.asyncio
    async def test_string_keys(self, bus: EventBus):
        received = []
        bus.subscribe("llm.error", received.append)
        await bus.emit(EventType.LLM_ERROR, message="x")
        assert received[0].data["message"] == "x"


class TestWildcard:
    @pytest.mark.asyncio
    async def test_wildcard_receives_all(self, bus: EventBus):
        received = []
        bus.subscribe(WILDCARD, lambda e: received.append(e.type))
        await bus.emit(EventType.LLM_REQUEST)
        await bus.emit(EventType.LLM_CANCELLED)
        assert received == [EventType.LLM_REQUEST, EventType.LLM_CANCELLED]


class TestUnsubscribe:
    @pytest.mark.asyncio
    async def test_unsubscribe_callable(self, bus: EventBus):
        received = []
        unsubscribe = bus.subscribe(EventType.LLM_DONE, received.append)
        unsubscribe()
        unsubscribe()
        await bus.emit(EventType.LLM_DONE)
        assert received == []


class TestErrorHandling:
    @pytest.mark.asyncio
    async def test_handler_exception_does_not_propagate(self, bus: EventBus):
        received = []

        async def bad(event):
            raise RuntimeError("handler broke")

        bus.subscribe(EventType.LLM_DONE, bad)
        bus.subscribe(EventType.LLM_DONE, received.append)
        await bus.emit(EventType.LLM_DONE)
        assert len(received) == 1


class TestHistory:
    @pytest.mark.asyncio
    async def test_history_is_bounded(self):
        bus = EventBus(max_history=3)
        for i in range(5):
            await bus.emit(EventType.LLM_REQUEST, n=i)
        assert [e.data["n"] for e in bus.history] == [2, 3, 4]

    @pytest.mark.asyncio
    async def test_clear(self, bus: EventBus):
        bus.subscribe(WILDCARD, lambda e: None)
        await bus.emit(EventType.LLM_DONE)
        bus.clear()
        assert bus.history == []


class TestClientEvents:
    async def test_stream_lifecycle(self, bus, openai_settings):
        transport = RecordingTransport(lambda r: sse_response([openai_sse("a", "b")]))
        client = LMClient(openai_settings, http=transport.client(), event_bus=bus)
        await collect(client.stream("s", "u"))

        types = [e.type for e in bus.history]
        assert types == [EventType.LLM_REQUEST, EventType.LLM_DONE]
        assert bus.history[0].data == {"backend": "openai", "model": "gpt-4o"}
        assert bus.history[1].data["chunks"] == 2

    async def test_stream_error(self, bus, openai_settings):
        transport = RecordingTransport(lambda r: httpx.Response(500, text="oops"))
        client = LMClient(openai_settings, http=transport.client(), event_bus=bus)
        await collect(client.stream("s", "u"))

        last = bus.history[-1]
        assert last.type is EventType.LLM_ERROR
        assert last.data["message"] == "API error 500: oops"

    async def test_stream_cancelled(self, bus, openai_settings):
        gate = asyncio.Event()

        async def stalled():
            await gate.wait()
            yield b""

        transport = RecordingTransport(lambda r: httpx.Response(200, content=stalled()))
        client = LMClient(openai_settings, http=transport.client(), event_bus=bus)
        source = CancellationTokenSource()
        asyncio.get_running_loop().call_later(0.01, source.cancel)
        await asyncio.wait_for(collect(client.stream("s", "u", source.token)), timeout=5)

        assert bus.history[-1].type is EventType.LLM_CANCELLED

    async def test_no_provider_emits_error(self, bus, no_direct_settings):
        client = LMClient(no_direct_settings, event_bus=bus)
        await collect(client.stream("s", "u"))
        assert [e.type for e in bus.history] == [EventType.LLM_ERROR]
        assert bus.history[0].data["backend"] is None

    async def test_tool_calls_count(self, bus, anthropic_settings):
        transport = RecordingTransport(lambda r: httpx.Response(200, json={
            "content": [{"type": "tool_use", "name": "runCommand", "input": {"command": "ls"}}],
        }))
        client = LMClient(anthropic_settings, http=transport.client(), event_bus=bus)
        await client.request_with_tools("s", "u", EXECUTION_TOOLS)

        last = bus.history[-1]
        assert last.type is EventType.LLM_TOOL_CALLS
        assert last.data == {"backend": "anthropic", "count": 1}
