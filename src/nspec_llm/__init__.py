"""nSpec LLM client: one streaming contract over host, OpenAI-compatible
and Anthropic backends."""

from nspec_llm.cancellation import CancellationToken, CancellationTokenSource
from nspec_llm.config import Settings, load_config
from nspec_llm.errors import (
    BackendHTTPError,
    ConfigurationError,
    GenerationCancelled,
    LLMClientError,
    TransportError,
)
from nspec_llm.llm.client import LMClient
from nspec_llm.llm.tool_calls import EXECUTION_TOOLS
from nspec_llm.types import (
    BackendKind,
    EditFile,
    ModelDescriptor,
    ProposedChange,
    RunCommand,
    StreamEvent,
    StreamEventType,
    ToolDefinition,
    ToolParameter,
    WriteFile,
)

__version__ = "0.1.0"

__all__ = [
    "BackendHTTPError",
    "BackendKind",
    "CancellationToken",
    "CancellationTokenSource",
    "ConfigurationError",
    "EXECUTION_TOOLS",
    "EditFile",
    "GenerationCancelled",
    "LLMClientError",
    "LMClient",
    "ModelDescriptor",
    "ProposedChange",
    "RunCommand",
    "Settings",
    "StreamEvent",
    "StreamEventType",
    "ToolDefinition",
    "ToolParameter",
    "TransportError",
    "WriteFile",
    "load_config",
]
