"""Streaming completion engine.

Drives one backend for one call and turns whatever happens into the uniform
``StreamEvent`` sequence: zero or more chunks, then exactly one terminal
``DONE`` or ``ERROR`` event.

State per call::

    IDLE -> DISPATCHING -> STREAMING -> DONE | ERRORED | CANCELLED
"""

from __future__ import annotations

import enum
import logging
import time
from typing import TYPE_CHECKING, AsyncGenerator

from nspec_llm.cancellation import CancellationToken
from nspec_llm.errors import GenerationCancelled, LLMClientError, TransportError
from nspec_llm.types import StreamEvent

if TYPE_CHECKING:
    from nspec_llm.llm.backends import Backend

_logger = logging.getLogger(__name__)


class StreamState(enum.Enum):
    IDLE = "idle"
    DISPATCHING = "dispatching"
    STREAMING = "streaming"
    DONE = "done"
    ERRORED = "errored"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (StreamState.DONE, StreamState.ERRORED, StreamState.CANCELLED)


class StreamSession:
    """Per-call mutable state. Owned by exactly one call; never shared."""

    def __init__(self, token: CancellationToken) -> None:
        self.token = token
        self.state = StreamState.IDLE
        self.chunks = 0
        self.started = time.monotonic()

    def transition(self, state: StreamState) -> None:
        if self.state.is_terminal:
            return
        _logger.debug("Stream %s -> %s", self.state.value, state.value)
        self.state = state

    def check(self) -> None:
        """Raise ``GenerationCancelled`` if the caller has cancelled."""
        self.token.raise_if_cancelled()

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started


def _as_client_error(exc: BaseException, token: CancellationToken) -> LLMClientError:
    if token.is_cancellation_requested:
        return GenerationCancelled()
    if isinstance(exc, LLMClientError):
        return exc
    return TransportError(str(exc) or type(exc).__name__)


async def run_stream(
    backend: Backend,
    system_prompt: str,
    user_prompt: str,
    token: CancellationToken,
) -> AsyncGenerator[StreamEvent, None]:
    """Stream one completion from *backend* as ``StreamEvent`` objects."""
    session = StreamSession(token)
    if token.is_cancellation_requested:
        session.transition(StreamState.CANCELLED)
        yield StreamEvent.failed(GenerationCancelled())
        return

    session.transition(StreamState.DISPATCHING)
    _logger.info("Dispatching completion to %s backend", backend.kind.value)

    texts = backend.stream_text(system_prompt, user_prompt, session)
    try:
        async for text in texts:
            session.check()
            session.transition(StreamState.STREAMING)
            session.chunks += 1
            yield StreamEvent.chunk(text)
            # The consumer may have cancelled while handling the chunk
            session.check()
    except GenerationCancelled as exc:
        session.transition(StreamState.CANCELLED)
        yield StreamEvent.failed(exc)
        return
    except Exception as exc:
        error = _as_client_error(exc, token)
        session.transition(
            StreamState.CANCELLED if error.is_cancellation else StreamState.ERRORED,
        )
        yield StreamEvent.failed(error)
        return
    finally:
        await texts.aclose()

    if token.is_cancellation_requested:
        session.transition(StreamState.CANCELLED)
        yield StreamEvent.failed(GenerationCancelled())
        return

    session.transition(StreamState.DONE)
    _logger.info(
        "%s completion done: %d chunk(s) in %.1fs",
        backend.kind.value, session.chunks, session.elapsed,
    )
    yield StreamEvent.done()
