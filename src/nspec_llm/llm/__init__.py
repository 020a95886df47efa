"""Completion client, backend strategies and SSE decoding."""

from nspec_llm.llm.backends import (
    AnthropicBackend,
    Backend,
    HostBackend,
    HostModel,
    HostModelProvider,
    OpenAICompatBackend,
)
from nspec_llm.llm.client import LMClient
from nspec_llm.llm.models import list_available_models
from nspec_llm.llm.resolver import detect_backend, resolve_provider
from nspec_llm.llm.sse import AnthropicDialect, OpenAIDialect, SSEFrameParser
from nspec_llm.llm.streaming import StreamSession, StreamState
from nspec_llm.llm.tool_calls import EXECUTION_TOOLS

__all__ = [
    "AnthropicBackend",
    "AnthropicDialect",
    "Backend",
    "EXECUTION_TOOLS",
    "HostBackend",
    "HostModel",
    "HostModelProvider",
    "LMClient",
    "OpenAICompatBackend",
    "OpenAIDialect",
    "SSEFrameParser",
    "StreamSession",
    "StreamState",
    "detect_backend",
    "list_available_models",
    "resolve_provider",
]
