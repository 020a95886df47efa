"""Shared data types for the nSpec LLM client."""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field
from typing import Any, Union

from nspec_llm.errors import LLMClientError


# ---------------------------------------------------------------------------
# Backends and models
# ---------------------------------------------------------------------------

class BackendKind(enum.Enum):
    """The three request-execution targets."""

    HOST = "host"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"

    @property
    def is_direct(self) -> bool:
        return self is not BackendKind.HOST

    @property
    def vendor_label(self) -> str:
        if self is BackendKind.ANTHROPIC:
            return "Anthropic"
        if self is BackendKind.OPENAI:
            return "OpenAI"
        return "Host"


@dataclass(frozen=True)
class ModelDescriptor:
    """One selectable model. Built fresh on every enumeration."""

    id: str
    vendor: str
    family: str
    name: str
    backend: BackendKind


@dataclass(frozen=True)
class ProviderConfig:
    """Resolved direct-backend configuration for a single call."""

    api_key: str
    base_url: str
    model: str
    backend: BackendKind


# ---------------------------------------------------------------------------
# Tool types
# ---------------------------------------------------------------------------

@dataclass
class ToolParameter:
    """Definition of a tool parameter."""

    name: str
    type: str  # string, integer, boolean, number
    description: str
    required: bool = True


@dataclass
class ToolDefinition:
    """A callable action offered to the model."""

    name: str
    description: str
    parameters: list[ToolParameter] = field(default_factory=list)

    @property
    def required(self) -> list[str]:
        return [p.name for p in self.parameters if p.required]

    def parameter_schema(self) -> dict[str, Any]:
        """JSON-schema ``object`` describing the parameters."""
        properties: dict[str, Any] = {}
        for p in self.parameters:
            properties[p.name] = {"type": p.type, "description": p.description}
        return {
            "type": "object",
            "properties": properties,
            "required": self.required,
        }

    def to_openai_schema(self) -> dict[str, Any]:
        """Convert to OpenAI function calling format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameter_schema(),
            },
        }

    def to_anthropic_schema(self) -> dict[str, Any]:
        """Convert to Anthropic tool declaration format."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.parameter_schema(),
        }

    def to_prompt_line(self) -> str:
        """One-line description for prompt-based tool calling."""
        return f"- {self.name}({', '.join(self.required)}): {self.description}"


@dataclass
class ToolCall:
    """Raw structured call decoded from a backend, before normalization."""

    name: str
    arguments: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class WriteFile:
    path: str
    content: str
    kind: str = field(default="writeFile", init=False)


@dataclass(frozen=True)
class EditFile:
    path: str
    old_text: str
    new_text: str
    kind: str = field(default="editFile", init=False)


@dataclass(frozen=True)
class RunCommand:
    command: str
    kind: str = field(default="runCommand", init=False)


ProposedChange = Union[WriteFile, EditFile, RunCommand]


# ---------------------------------------------------------------------------
# Stream events
# ---------------------------------------------------------------------------

class StreamEventType(enum.Enum):
    CHUNK = "chunk"
    DONE = "done"
    ERROR = "error"


@dataclass
class StreamEvent:
    """One item of the uniform streaming contract.

    A call yields zero or more ``CHUNK`` events followed by exactly one
    terminal ``DONE`` or ``ERROR`` event.
    """

    type: StreamEventType
    text: str = ""
    error: LLMClientError | None = None

    @property
    def is_terminal(self) -> bool:
        return self.type is not StreamEventType.CHUNK

    @property
    def cancelled(self) -> bool:
        return self.error is not None and self.error.is_cancellation

    @classmethod
    def chunk(cls, text: str) -> StreamEvent:
        return cls(StreamEventType.CHUNK, text=text)

    @classmethod
    def done(cls) -> StreamEvent:
        return cls(StreamEventType.DONE)

    @classmethod
    def failed(cls, error: LLMClientError) -> StreamEvent:
        return cls(StreamEventType.ERROR, error=error)


# ---------------------------------------------------------------------------
# Lifecycle events
# ---------------------------------------------------------------------------

class EventType(enum.Enum):
    """Lifecycle events emitted by the client."""

    LLM_REQUEST = "llm.request"
    LLM_DONE = "llm.done"
    LLM_ERROR = "llm.error"
    LLM_CANCELLED = "llm.cancelled"
    LLM_TOOL_CALLS = "llm.tool_calls"


@dataclass
class ClientEvent:
    """Event emitted by the client via the EventBus."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)
