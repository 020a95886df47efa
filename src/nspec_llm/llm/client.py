"""Uniform completion client over the host model, OpenAI-compatible and
Anthropic backends.

Exposes ``stream()`` (async generator of ``StreamEvent``) and its callback
form ``stream_completion()``, plus ``request_with_tools()`` for structured
actions and ``list_available_models()`` for model pickers.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, AsyncGenerator, Callable

import httpx

from nspec_llm.cancellation import CancellationToken
from nspec_llm.config import Settings, load_config
from nspec_llm.errors import (
    ConfigurationError,
    GenerationCancelled,
    LLMClientError,
    TransportError,
)
from nspec_llm.events.bus import EventBus
from nspec_llm.types import (
    BackendKind,
    EventType,
    ModelDescriptor,
    ProposedChange,
    StreamEvent,
    StreamEventType,
    ToolDefinition,
)

from .backends import Backend, HostBackend, HostModelProvider, direct_backend
from .models import list_available_models, list_host_models
from .resolver import resolve_provider
from .streaming import run_stream
from .tool_calls import to_proposed_changes

_logger = logging.getLogger(__name__)

SettingsSource = Callable[[], Settings]


async def _call(callback: Callable[..., Any], *args: Any) -> None:
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class LMClient:
    """Single-request-per-call completion client.

    Parameters
    ----------
    settings:
        A ``Settings`` snapshot, or a zero-argument callable returning the
        current settings (read once per call).  Defaults to ``load_config()``.
    host:
        Optional host model provider.
    http:
        Optional ``httpx.AsyncClient``; one is created (and owned) if omitted.
    event_bus:
        Optional bus receiving ``llm.*`` lifecycle events.
    """

    def __init__(
        self,
        settings: Settings | SettingsSource | None = None,
        host: HostModelProvider | None = None,
        http: httpx.AsyncClient | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        if settings is None:
            loaded = load_config()
            self._settings: SettingsSource = lambda: loaded
        elif isinstance(settings, Settings):
            self._settings = lambda: settings
        else:
            self._settings = settings
        self._host = host
        self._http = http
        self._owns_http = http is None
        self._event_bus = event_bus

        initial = self._settings()
        self._selected_model_id: str | None = initial.preferred_model_id or None
        self._selected_backend = (
            BackendKind(initial.preferred_backend)
            if initial.preferred_backend
            else BackendKind.HOST
        )

    # ------------------------------------------------------------------
    # Model selection
    # ------------------------------------------------------------------

    async def list_available_models(self) -> list[ModelDescriptor]:
        """Host models plus the direct-backend model. Never raises."""
        return await list_available_models(self._host, self._settings())

    async def has_any_model(self) -> bool:
        return bool(await self.list_available_models())

    def set_selected_model(self, model_id: str, backend: BackendKind | None = None) -> None:
        """Pin a model id and, optionally, the backend it belongs to."""
        self._selected_model_id = model_id or None
        if backend is not None:
            self._selected_backend = backend

    @property
    def selected_model_id(self) -> str | None:
        return self._selected_model_id

    @property
    def selected_backend(self) -> BackendKind:
        return self._selected_backend

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def stream(
        self,
        system_prompt: str,
        user_prompt: str,
        token: CancellationToken | None = None,
    ) -> AsyncGenerator[StreamEvent, None]:
        """Stream one completion.

        Yields ``CHUNK`` events in order, then exactly one ``DONE`` or
        ``ERROR`` event.  Cancellation arrives as an ``ERROR`` whose
        ``cancelled`` flag is set.
        """
        token = token or CancellationToken.none()
        if token.is_cancellation_requested:
            yield StreamEvent.failed(GenerationCancelled())
            return

        try:
            backend = await self._select_backend(self._settings(), token)
        except LLMClientError as e:
            await self._emit_failure(None, e)
            yield StreamEvent.failed(e)
            return

        await self._emit_request(backend)
        chunks = 0
        events = run_stream(backend, system_prompt, user_prompt, token)
        try:
            async for event in events:
                if event.type is StreamEventType.CHUNK:
                    chunks += 1
                elif event.type is StreamEventType.DONE:
                    await self._emit(EventType.LLM_DONE, backend=backend.kind.value, chunks=chunks)
                else:
                    await self._emit_failure(backend, event.error)
                yield event
        finally:
            await events.aclose()

    async def stream_completion(
        self,
        system_prompt: str,
        user_prompt: str,
        on_chunk: Callable[[str], Any],
        on_done: Callable[[], Any],
        on_error: Callable[[str], Any],
        token: CancellationToken | None = None,
    ) -> None:
        """Callback form of ``stream()``. Callbacks may be sync or async."""
        async for event in self.stream(system_prompt, user_prompt, token):
            if event.type is StreamEventType.CHUNK:
                await _call(on_chunk, event.text)
            elif event.type is StreamEventType.DONE:
                await _call(on_done)
            else:
                await _call(on_error, str(event.error))

    # ------------------------------------------------------------------
    # Tool calls
    # ------------------------------------------------------------------

    async def request_with_tools(
        self,
        system_prompt: str,
        user_prompt: str,
        tools: list[ToolDefinition],
        token: CancellationToken | None = None,
    ) -> list[ProposedChange]:
        """Ask for structured actions and normalize them.

        Returns a possibly empty list.  Raises ``LLMClientError``
        subclasses for configuration, transport, HTTP and cancellation.
        """
        token = token or CancellationToken.none()
        token.raise_if_cancelled()

        try:
            backend = await self._select_backend(self._settings(), token)
        except LLMClientError as e:
            await self._emit_failure(None, e)
            raise

        await self._emit_request(backend)
        try:
            calls = await backend.call_with_tools(system_prompt, user_prompt, tools, token)
        except LLMClientError as e:
            error = GenerationCancelled() if token.is_cancellation_requested else e
            await self._emit_failure(backend, error)
            if error is e:
                raise
            raise error from e
        except Exception as e:
            error = (
                GenerationCancelled()
                if token.is_cancellation_requested
                else TransportError(str(e) or type(e).__name__)
            )
            await self._emit_failure(backend, error)
            raise error from e

        changes = to_proposed_changes(calls)
        await self._emit(
            EventType.LLM_TOOL_CALLS, backend=backend.kind.value, count=len(changes),
        )
        return changes

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        """Close the owned HTTP client."""
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None

    async def __aenter__(self) -> LMClient:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _http_client(self) -> httpx.AsyncClient:
        if self._http is None:
            # No internal timeout: callers bound calls via cancellation
            self._http = httpx.AsyncClient(timeout=httpx.Timeout(None))
            self._owns_http = True
        return self._http

    async def _select_backend(self, settings: Settings, token: CancellationToken) -> Backend:
        """Pick exactly one backend for this call.

        A pinned direct backend wins when an API key is configured;
        otherwise the host is preferred when it reports models, then the
        direct backend.  Cancellation is observed while the host enumerates.
        """
        direct = resolve_provider(settings, self._selected_backend)

        if self._selected_backend.is_direct and direct is not None:
            _logger.debug("Using pinned %s backend", direct.backend.value)
            return direct_backend(direct, self._http_client(), settings)

        if self._host is not None:
            host_models = await token.race(
                list_host_models(self._host, settings.host_enumeration_timeout),
            )
            if host_models:
                _logger.debug("Using host backend (%d model(s))", len(host_models))
                return HostBackend(self._host, self._selected_model_id)

        if direct is not None:
            _logger.debug("Falling back to %s backend", direct.backend.value)
            return direct_backend(direct, self._http_client(), settings)

        raise ConfigurationError()

    async def _emit(self, event_type: EventType, **data: Any) -> None:
        if self._event_bus is not None:
            await self._event_bus.emit(event_type, **data)

    async def _emit_request(self, backend: Backend) -> None:
        model = getattr(getattr(backend, "config", None), "model", self._selected_model_id)
        _logger.info("LLM request via %s backend (model=%s)", backend.kind.value, model)
        await self._emit(EventType.LLM_REQUEST, backend=backend.kind.value, model=model)

    async def _emit_failure(
        self,
        backend: Backend | None,
        error: LLMClientError | None,
    ) -> None:
        kind = backend.kind.value if backend is not None else None
        if error is not None and error.is_cancellation:
            await self._emit(EventType.LLM_CANCELLED, backend=kind)
        else:
            await self._emit(EventType.LLM_ERROR, backend=kind, message=str(error))
