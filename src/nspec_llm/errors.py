"""Error types surfaced by the LLM client.

Malformed SSE frames and tool output without a JSON array are recovered
locally and never reach callers; everything here terminates the call.
"""

from __future__ import annotations

CANCELLED_MESSAGE = "Generation cancelled."

NO_PROVIDER_MESSAGE = (
    "No AI provider configured. Install a host model provider "
    "or set an API key (nspec.api_key / NSPEC_API_KEY)."
)


class LLMClientError(Exception):
    """Base error type for all client failures."""

    is_cancellation = False


class ConfigurationError(LLMClientError):
    """No backend is usable; raised before any I/O."""

    def __init__(self, message: str = NO_PROVIDER_MESSAGE) -> None:
        super().__init__(message)


class TransportError(LLMClientError):
    """A backend could not be reached or failed mid-response."""


class BackendHTTPError(LLMClientError):
    """A direct backend answered with a non-2xx status."""

    def __init__(self, label: str, status_code: int, body_excerpt: str) -> None:
        self.label = label
        self.status_code = status_code
        self.body_excerpt = body_excerpt
        super().__init__(f"{label} error {status_code}: {body_excerpt}")


class GenerationCancelled(LLMClientError):
    """The caller cancelled the call. Not a failure; do not retry."""

    is_cancellation = True

    def __init__(self, message: str = CANCELLED_MESSAGE) -> None:
        super().__init__(message)


__all__ = [
    "CANCELLED_MESSAGE",
    "NO_PROVIDER_MESSAGE",
    "BackendHTTPError",
    "ConfigurationError",
    "GenerationCancelled",
    "LLMClientError",
    "TransportError",
]
