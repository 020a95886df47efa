"""Backend strategies: host model, OpenAI-compatible and Anthropic.

Every strategy implements the same two operations:

- ``stream_text()`` -- an async generator of text deltas for one completion
- ``call_with_tools()`` -- one non-streaming request returning raw ``ToolCall``s

The client picks one strategy per call and never mixes them.
"""

from __future__ import annotations

import inspect
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncGenerator, AsyncIterable, Protocol, runtime_checkable

import httpx

from nspec_llm.cancellation import CancellationToken
from nspec_llm.config import Settings
from nspec_llm.errors import BackendHTTPError, LLMClientError, TransportError
from nspec_llm.types import BackendKind, ProviderConfig, ToolCall, ToolDefinition

from .sse import AnthropicDialect, OpenAIDialect, SSEDialect, SSEFrameParser
from .streaming import StreamSession, StreamState
from .tool_calls import augment_system_prompt, parse_tool_calls_from_text

_logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Host model contract
# ---------------------------------------------------------------------------

@runtime_checkable
class HostModel(Protocol):
    """A model exposed by the embedding application."""

    id: str
    vendor: str
    family: str
    name: str

    def send_request(
        self,
        messages: list[dict[str, str]],
        token: CancellationToken,
    ) -> Any:
        """Return (or resolve to) an async iterable of generated text."""


class HostModelProvider(Protocol):
    """Capability to enumerate host models, optionally filtered by id."""

    async def select_models(self, model_id: str | None = None) -> list[HostModel]:
        ...


def host_messages(system_prompt: str, user_prompt: str) -> list[dict[str, str]]:
    """System framing as an assistant turn, then the user prompt."""
    return [
        {"role": "assistant", "content": system_prompt},
        {"role": "user", "content": user_prompt},
    ]


# ---------------------------------------------------------------------------
# Strategy interface
# ---------------------------------------------------------------------------

class Backend(ABC):
    """One request-execution target."""

    kind: BackendKind

    @abstractmethod
    def stream_text(
        self,
        system_prompt: str,
        user_prompt: str,
        session: StreamSession,
    ) -> AsyncGenerator[str, None]:
        """Yield text deltas in order. Raise ``LLMClientError`` on failure."""

    @abstractmethod
    async def call_with_tools(
        self,
        system_prompt: str,
        user_prompt: str,
        tools: list[ToolDefinition],
        token: CancellationToken,
    ) -> list[ToolCall]:
        """Run one tool-enabled request and return the raw calls."""


async def _next_item(iterator: Any) -> Any:
    """``anext`` that returns ``None`` at end-of-stream."""
    try:
        return await iterator.__anext__()
    except StopAsyncIteration:
        return None


def _stringify_arguments(raw: Any) -> dict[str, str]:
    if not isinstance(raw, dict):
        return {}
    args: dict[str, str] = {}
    for key, value in raw.items():
        if isinstance(value, str):
            args[str(key)] = value
        elif value is None:
            continue
        else:
            args[str(key)] = json.dumps(value)
    return args


# ---------------------------------------------------------------------------
# Host model
# ---------------------------------------------------------------------------

class HostBackend(Backend):
    """In-process model supplied by the host application."""

    kind = BackendKind.HOST

    def __init__(self, provider: HostModelProvider, model_id: str | None = None) -> None:
        self._provider = provider
        self._model_id = model_id or None

    async def _pick_model(self, token: CancellationToken) -> HostModel:
        candidates: list[HostModel] = []
        if self._model_id:
            candidates = await token.race(self._provider.select_models(self._model_id))
        if not candidates:
            candidates = await token.race(self._provider.select_models())
        if not candidates:
            raise LLMClientError("No host models available")
        return candidates[0]

    async def _open(
        self,
        system_prompt: str,
        user_prompt: str,
        token: CancellationToken,
    ) -> AsyncIterable[str]:
        model = await self._pick_model(token)
        _logger.debug("Host request to model %s", model.id)
        response = model.send_request(host_messages(system_prompt, user_prompt), token)
        if inspect.isawaitable(response):
            response = await token.race(response)
        return response

    async def stream_text(
        self,
        system_prompt: str,
        user_prompt: str,
        session: StreamSession,
    ) -> AsyncGenerator[str, None]:
        token = session.token
        stream = await self._open(system_prompt, user_prompt, token)
        session.transition(StreamState.STREAMING)
        iterator = stream.__aiter__()
        try:
            while True:
                text = await token.race(_next_item(iterator))
                if text is None:
                    return
                session.check()
                if text:
                    yield text
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()

    async def call_with_tools(
        self,
        system_prompt: str,
        user_prompt: str,
        tools: list[ToolDefinition],
        token: CancellationToken,
    ) -> list[ToolCall]:
        session = StreamSession(token)
        parts: list[str] = []
        texts = self.stream_text(augment_system_prompt(system_prompt, tools), user_prompt, session)
        try:
            async for text in texts:
                parts.append(text)
        finally:
            await texts.aclose()
        token.raise_if_cancelled()
        return parse_tool_calls_from_text("".join(parts))


# ---------------------------------------------------------------------------
# Direct HTTP backends
# ---------------------------------------------------------------------------

class HTTPBackend(Backend):
    """Shared request/response handling for the two REST backends."""

    dialect: SSEDialect
    error_label: str
    endpoint: str

    def __init__(
        self,
        config: ProviderConfig,
        http: httpx.AsyncClient,
        settings: Settings | None = None,
    ) -> None:
        self.config = config
        self._http = http
        self._settings = settings or Settings()

    @property
    def url(self) -> str:
        return f"{self.config.base_url}{self.endpoint}"

    @abstractmethod
    def headers(self) -> dict[str, str]:
        ...

    @abstractmethod
    def stream_payload(self, system_prompt: str, user_prompt: str) -> dict[str, Any]:
        ...

    @abstractmethod
    def tool_payload(
        self,
        system_prompt: str,
        user_prompt: str,
        tools: list[ToolDefinition],
    ) -> dict[str, Any]:
        ...

    @abstractmethod
    def extract_tool_calls(self, data: Any) -> list[ToolCall]:
        ...

    async def _send(
        self,
        payload: dict[str, Any],
        token: CancellationToken,
        stream: bool,
    ) -> httpx.Response:
        request = self._http.build_request(
            "POST", self.url, json=payload, headers=self.headers(),
        )
        try:
            return await token.race(self._http.send(request, stream=stream))
        except httpx.HTTPError as e:
            raise TransportError(str(e) or type(e).__name__) from e

    async def _raise_for_status(
        self,
        response: httpx.Response,
        token: CancellationToken,
        limit: int,
    ) -> None:
        if response.is_success:
            return
        try:
            body = await token.race(response.aread())
        except httpx.HTTPError:
            body = b""
        text = body.decode("utf-8", errors="replace")
        raise BackendHTTPError(self.error_label, response.status_code, text[:limit])

    async def stream_text(
        self,
        system_prompt: str,
        user_prompt: str,
        session: StreamSession,
    ) -> AsyncGenerator[str, None]:
        token = session.token
        payload = self.stream_payload(system_prompt, user_prompt)
        response = await self._send(payload, token, stream=True)
        try:
            await self._raise_for_status(
                response, token, self._settings.error_excerpt_chars,
            )
            session.transition(StreamState.STREAMING)
            parser = SSEFrameParser(self.dialect)
            chunks = response.aiter_bytes()
            while not parser.finished:
                try:
                    data = await token.race(_next_item(chunks))
                except httpx.HTTPError as e:
                    raise TransportError(str(e) or type(e).__name__) from e
                deltas = parser.feed(data) if data is not None else parser.close()
                for delta in deltas:
                    session.check()
                    if delta.text:
                        yield delta.text
        finally:
            await response.aclose()

    async def call_with_tools(
        self,
        system_prompt: str,
        user_prompt: str,
        tools: list[ToolDefinition],
        token: CancellationToken,
    ) -> list[ToolCall]:
        payload = self.tool_payload(system_prompt, user_prompt, tools)
        response = await self._send(payload, token, stream=False)
        await self._raise_for_status(
            response, token, self._settings.tool_error_excerpt_chars,
        )
        try:
            data = response.json()
        except json.JSONDecodeError as e:
            raise TransportError(f"{self.error_label} returned invalid JSON: {e}") from e
        return self.extract_tool_calls(data)


class OpenAICompatBackend(HTTPBackend):
    """``POST {base}/chat/completions`` with bearer auth."""

    kind = BackendKind.OPENAI
    dialect = OpenAIDialect()
    error_label = "API"
    endpoint = "/chat/completions"

    def headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.api_key}",
        }

    def _messages(self, system_prompt: str, user_prompt: str) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]

    def stream_payload(self, system_prompt: str, user_prompt: str) -> dict[str, Any]:
        return {
            "model": self.config.model,
            "stream": True,
            "messages": self._messages(system_prompt, user_prompt),
        }

    def tool_payload(
        self,
        system_prompt: str,
        user_prompt: str,
        tools: list[ToolDefinition],
    ) -> dict[str, Any]:
        return {
            "model": self.config.model,
            "messages": self._messages(system_prompt, user_prompt),
            "tools": [t.to_openai_schema() for t in tools],
            "tool_choice": "auto",
        }

    def extract_tool_calls(self, data: Any) -> list[ToolCall]:
        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            return []
        message = choices[0].get("message") or {}
        calls: list[ToolCall] = []
        for tc in message.get("tool_calls") or []:
            func = tc.get("function") or {}
            raw_args = func.get("arguments") or "{}"
            if isinstance(raw_args, str):
                try:
                    raw_args = json.loads(raw_args)
                except json.JSONDecodeError:
                    _logger.debug("Unparsable tool arguments for %s", func.get("name"))
                    raw_args = {}
            calls.append(
                ToolCall(name=func.get("name", ""), arguments=_stringify_arguments(raw_args)),
            )
        return calls


class AnthropicBackend(HTTPBackend):
    """``POST {base}/messages`` with ``x-api-key`` and a version header."""

    kind = BackendKind.ANTHROPIC
    dialect = AnthropicDialect()
    error_label = "Anthropic API"
    endpoint = "/messages"

    def headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self.config.api_key,
            "anthropic-version": self._settings.anthropic_version,
        }

    def stream_payload(self, system_prompt: str, user_prompt: str) -> dict[str, Any]:
        return {
            "model": self.config.model,
            "max_tokens": self._settings.max_tokens,
            "stream": True,
            "system": system_prompt,
            "messages": [{"role": "user", "content": user_prompt}],
        }

    def tool_payload(
        self,
        system_prompt: str,
        user_prompt: str,
        tools: list[ToolDefinition],
    ) -> dict[str, Any]:
        return {
            "model": self.config.model,
            "max_tokens": self._settings.max_tokens,
            "system": system_prompt,
            "messages": [{"role": "user", "content": user_prompt}],
            "tools": [t.to_anthropic_schema() for t in tools],
        }

    def extract_tool_calls(self, data: Any) -> list[ToolCall]:
        blocks = data.get("content") if isinstance(data, dict) else None
        calls: list[ToolCall] = []
        for block in blocks or []:
            if not isinstance(block, dict) or block.get("type") != "tool_use":
                continue
            calls.append(
                ToolCall(
                    name=block.get("name", ""),
                    arguments=_stringify_arguments(block.get("input")),
                ),
            )
        return calls


def direct_backend(
    config: ProviderConfig,
    http: httpx.AsyncClient,
    settings: Settings | None = None,
) -> HTTPBackend:
    """Build the strategy matching ``config.backend``."""
    if config.backend is BackendKind.ANTHROPIC:
        return AnthropicBackend(config, http, settings)
    return OpenAICompatBackend(config, http, settings)
