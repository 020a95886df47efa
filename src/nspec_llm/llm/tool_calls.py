"""Tool declarations, prompt-based tool calling and change normalization."""

from __future__ import annotations

import json
import logging
from typing import Any

from nspec_llm.types import (
    EditFile,
    ProposedChange,
    RunCommand,
    ToolCall,
    ToolDefinition,
    ToolParameter,
    WriteFile,
)

_logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default tool set
# ---------------------------------------------------------------------------

EXECUTION_TOOLS: list[ToolDefinition] = [
    ToolDefinition(
        name="writeFile",
        description="Create or overwrite a file in the workspace",
        parameters=[
            ToolParameter("path", "string", "Relative file path"),
            ToolParameter("content", "string", "Full file content"),
        ],
    ),
    ToolDefinition(
        name="editFile",
        description="Apply a targeted edit to an existing file",
        parameters=[
            ToolParameter("path", "string", "Relative file path"),
            ToolParameter("oldText", "string", "Exact text to replace"),
            ToolParameter("newText", "string", "Replacement text"),
        ],
    ),
    ToolDefinition(
        name="runCommand",
        description="Run a shell command in the workspace",
        parameters=[
            ToolParameter("command", "string", "Shell command to execute"),
        ],
    ),
]


# ---------------------------------------------------------------------------
# Prompt-based tool calling (host model)
# ---------------------------------------------------------------------------

def augment_system_prompt(system_prompt: str, tools: list[ToolDefinition]) -> str:
    """Append tool descriptions and demand a bare JSON array response."""
    tool_lines = "\n".join(t.to_prompt_line() for t in tools)
    return (
        f"{system_prompt}\n\n"
        "Respond with a JSON array of tool calls. "
        'Each element: {"name":"<tool>","arguments":{<params>}}.\n'
        f"Available tools:\n{tool_lines}\n\n"
        "Respond ONLY with the JSON array."
    )


def _extract_balanced_array(text: str, start: int) -> str | None:
    """Extract a balanced ``[...]`` starting at *start*.

    Brackets inside quoted strings are ignored.
    """
    depth = 0
    in_string = False
    escape = False
    for i in range(start, len(text)):
        ch = text[i]
        if escape:
            escape = False
            continue
        if ch == "\\":
            escape = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return None


def extract_json_array(text: str) -> list[Any] | None:
    """Locate and parse the first JSON array in free-form *text*."""
    start = text.find("[")
    if start < 0:
        return None
    candidates = []
    balanced = _extract_balanced_array(text, start)
    if balanced:
        candidates.append(balanced)
    end = text.rfind("]")
    if end > start:
        candidates.append(text[start : end + 1])
    for raw in candidates:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            continue
        if isinstance(data, list):
            return data
    return None


def parse_tool_calls_from_text(text: str) -> list[ToolCall]:
    """Decode ``[{"name": ..., "arguments": {...}}, ...]`` from model text.

    Returns an empty list when no valid array is present.
    """
    items = extract_json_array(text)
    if items is None:
        _logger.warning("No JSON array of tool calls found in host model output")
        return []
    calls: list[ToolCall] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        name = item.get("name") or item.get("tool")
        if not isinstance(name, str) or not name:
            continue
        args = item.get("arguments", item.get("args", {}))
        if isinstance(args, str):
            try:
                args = json.loads(args)
            except json.JSONDecodeError:
                args = {}
        if not isinstance(args, dict):
            args = {}
        calls.append(
            ToolCall(
                name=name,
                arguments={
                    str(k): v if isinstance(v, str) else json.dumps(v)
                    for k, v in args.items()
                    if v is not None
                },
            ),
        )
    return calls


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def to_proposed_change(call: ToolCall) -> ProposedChange:
    """Map a raw call to its canonical change.

    Unknown tool names degrade to a ``WriteFile`` built from whatever
    ``path``/``content`` arguments are present.
    """
    args = call.arguments
    if call.name == "writeFile":
        return WriteFile(path=args.get("path", ""), content=args.get("content", ""))
    if call.name == "editFile":
        return EditFile(
            path=args.get("path", ""),
            old_text=args.get("oldText", ""),
            new_text=args.get("newText", ""),
        )
    if call.name == "runCommand":
        return RunCommand(command=args.get("command", ""))
    _logger.debug("Unrecognized tool %r; using writeFile fallback", call.name)
    return WriteFile(path=args.get("path") or "unknown", content=args.get("content") or "")


def to_proposed_changes(calls: list[ToolCall]) -> list[ProposedChange]:
    return [to_proposed_change(c) for c in calls]
