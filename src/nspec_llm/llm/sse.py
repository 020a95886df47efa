"""Incremental Server-Sent-Events decoding for the two direct backends.

One ``SSEFrameParser`` does the buffering and line framing; a small dialect
object decides what a decoded ``data:`` payload means.
"""

from __future__ import annotations

import codecs
import json
import logging
from dataclasses import dataclass
from typing import Any, Iterator

_logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
OPENAI_DONE_SENTINEL = "[DONE]"


@dataclass
class SSEDelta:
    """A decoded frame: optional text, and whether the stream is finished."""

    text: str = ""
    terminal: bool = False


# ---------------------------------------------------------------------------
# Dialects
# ---------------------------------------------------------------------------

class SSEDialect:
    """Per-backend field extraction and termination rules."""

    name = "base"

    def is_sentinel(self, data: str) -> bool:
        """Literal (non-JSON) payloads that end the stream."""
        return False

    def extract_text(self, payload: Any) -> str:
        raise NotImplementedError

    def is_terminal(self, payload: Any) -> bool:
        return False


class OpenAIDialect(SSEDialect):
    """``choices[0].delta.content``; terminated by ``data: [DONE]``."""

    name = "openai"

    def is_sentinel(self, data: str) -> bool:
        return data == OPENAI_DONE_SENTINEL

    def extract_text(self, payload: Any) -> str:
        if not isinstance(payload, dict):
            return ""
        choices = payload.get("choices")
        if not isinstance(choices, list) or not choices:
            return ""
        first = choices[0] if isinstance(choices[0], dict) else {}
        delta = first.get("delta") or {}
        content = delta.get("content") if isinstance(delta, dict) else None
        return content if isinstance(content, str) else ""


class AnthropicDialect(SSEDialect):
    """``content_block_delta`` carries ``delta.text``; ``message_stop`` ends."""

    name = "anthropic"

    def extract_text(self, payload: Any) -> str:
        if not isinstance(payload, dict) or payload.get("type") != "content_block_delta":
            return ""
        delta = payload.get("delta") or {}
        text = delta.get("text") if isinstance(delta, dict) else None
        return text if isinstance(text, str) else ""

    def is_terminal(self, payload: Any) -> bool:
        return isinstance(payload, dict) and payload.get("type") == "message_stop"


# ---------------------------------------------------------------------------
# Line framer
# ---------------------------------------------------------------------------

class SSEFrameParser:
    """Turn raw byte chunks into ``SSEDelta`` records.

    Multi-byte UTF-8 sequences split across chunks are held back by the
    incremental decoder; partial lines stay in the buffer until their
    ``\\n`` arrives.  Once a terminal frame is seen the parser is finished
    and ignores further input.
    """

    def __init__(self, dialect: SSEDialect) -> None:
        self.dialect = dialect
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.finished = False

    @property
    def buffered(self) -> str:
        return self._buffer

    def feed(self, chunk: bytes) -> Iterator[SSEDelta]:
        """Decode *chunk* and yield a delta per complete, meaningful line."""
        if self.finished:
            return
        self._buffer += self._decoder.decode(chunk)
        yield from self._drain()

    def close(self) -> Iterator[SSEDelta]:
        """Flush the decoder and any final unterminated line at end-of-stream."""
        if self.finished:
            return
        self._buffer += self._decoder.decode(b"", final=True)
        if self._buffer:
            self._buffer += "\n"
            yield from self._drain()
        self.finished = True

    def _drain(self) -> Iterator[SSEDelta]:
        while not self.finished:
            newline = self._buffer.find("\n")
            if newline < 0:
                return
            line = self._buffer[:newline]
            self._buffer = self._buffer[newline + 1:]
            delta = self._parse_line(line)
            if delta is None:
                continue
            if delta.terminal:
                self.finished = True
                self._buffer = ""
            yield delta

    def _parse_line(self, line: str) -> SSEDelta | None:
        trimmed = line.strip()
        if not trimmed.startswith(DATA_PREFIX):
            # event:, id:, retry:, comments and keep-alive blank lines
            return None
        data = trimmed[len(DATA_PREFIX):].strip()
        if self.dialect.is_sentinel(data):
            return SSEDelta(terminal=True)
        try:
            payload = json.loads(data)
        except json.JSONDecodeError:
            _logger.debug("Skipping malformed %s frame: %.80s", self.dialect.name, data)
            return None
        text = self.dialect.extract_text(payload)
        terminal = self.dialect.is_terminal(payload)
        if not text and not terminal:
            return None
        return SSEDelta(text=text, terminal=terminal)
