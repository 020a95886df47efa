"""Shared fixtures: fake host models, settings and SSE transports."""

from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncIterator, Callable

import httpx
import pytest

from nspec_llm.config import Settings
from nspec_llm.types import StreamEvent


# ---------------------------------------------------------------------------
# Host model fakes
# ---------------------------------------------------------------------------

class FakeHostModel:
    def __init__(
        self,
        id: str = "copilot-gpt-4",
        chunks: tuple[str, ...] = ("hello",),
        vendor: str = "GitHub",
        family: str = "gpt-4",
        name: str = "GPT-4 (Copilot)",
        error: Exception | None = None,
    ) -> None:
        self.id = id
        self.vendor = vendor
        self.family = family
        self.name = name
        self.chunks = chunks
        self.error = error
        self.requests: list[list[dict[str, str]]] = []

    def send_request(self, messages, token) -> AsyncIterator[str]:
        self.requests.append(messages)
        return self._generate()

    async def _generate(self) -> AsyncIterator[str]:
        for chunk in self.chunks:
            await asyncio.sleep(0)
            yield chunk
        if self.error is not None:
            raise self.error


class FakeHostProvider:
    def __init__(self, models: list[FakeHostModel] | None = None, error: Exception | None = None):
        self.models = models or []
        self.error = error
        self.calls: list[str | None] = []

    async def select_models(self, model_id: str | None = None) -> list[FakeHostModel]:
        self.calls.append(model_id)
        if self.error is not None:
            raise self.error
        if model_id:
            return [m for m in self.models if m.id == model_id]
        return list(self.models)


# ---------------------------------------------------------------------------
# SSE helpers
# ---------------------------------------------------------------------------

def openai_frame(text: str) -> str:
    payload = {"choices": [{"index": 0, "delta": {"content": text}}]}
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def openai_sse(*texts: str, done: bool = True) -> bytes:
    body = "".join(openai_frame(t) for t in texts)
    if done:
        body += "data: [DONE]\n\n"
    return body.encode("utf-8")


def anthropic_frame(payload: dict[str, Any]) -> str:
    return f"event: {payload['type']}\ndata: {json.dumps(payload, ensure_ascii=False)}\n\n"


def anthropic_sse(*texts: str, stop: bool = True) -> bytes:
    body = anthropic_frame({"type": "message_start", "message": {"id": "msg_1"}})
    body += anthropic_frame(
        {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}},
    )
    for t in texts:
        body += anthropic_frame(
            {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": t}},
        )
    body += anthropic_frame({"type": "content_block_stop", "index": 0})
    if stop:
        body += anthropic_frame({"type": "message_stop"})
    return body.encode("utf-8")


def split_every(data: bytes, size: int) -> list[bytes]:
    return [data[i : i + size] for i in range(0, len(data), size)]


def sse_response(chunks: list[bytes], status_code: int = 200) -> httpx.Response:
    async def body() -> AsyncIterator[bytes]:
        for chunk in chunks:
            await asyncio.sleep(0)
            yield chunk

    return httpx.Response(
        status_code,
        headers={"content-type": "text/event-stream"},
        content=body(),
    )


class RecordingTransport:
    """MockTransport handler that records requests."""

    def __init__(self, respond: Callable[[httpx.Request], httpx.Response]) -> None:
        self.respond = respond
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.respond(request)

    @property
    def last_json(self) -> dict[str, Any]:
        return json.loads(self.requests[-1].content)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


async def collect(events: AsyncIterator[StreamEvent]) -> list[StreamEvent]:
    return [e async for e in events]


def chunk_texts(events: list[StreamEvent]) -> list[str]:
    return [e.text for e in events if not e.is_terminal]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def openai_settings() -> Settings:
    return Settings(
        api_key="sk-test-openai",
        api_base_url="https://api.openai.com/v1",
        api_model="gpt-4o",
    )


@pytest.fixture
def anthropic_settings() -> Settings:
    return Settings(
        api_key="sk-ant-test",
        api_base_url="https://api.anthropic.com/v1",
        api_model="claude-3-5-sonnet-20241022",
    )


@pytest.fixture
def no_direct_settings() -> Settings:
    return Settings()


@pytest.fixture
def host_model() -> FakeHostModel:
    return FakeHostModel(chunks=("Hel", "lo ", "host"))


@pytest.fixture
def host(host_model: FakeHostModel) -> FakeHostProvider:
    return FakeHostProvider([host_model])
