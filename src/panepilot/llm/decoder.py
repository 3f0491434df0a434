"""Incremental extraction of one JSON object from a streamed completion."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass

LOGGER = logging.getLogger(__name__)

STREAM_MARKER = "data:"
STREAM_DONE = "[DONE]"
UNMATCHED_BRACES = "unmatched braces"


@dataclass(frozen=True, slots=True)
class CompletionResult:
    """Outcome of one streamed completion.

    ``text`` always holds the plain content received so far. ``json_text`` is
    set when a balanced top-level object was found. ``error`` carries the
    transport or decoding failure, if any; the partial ``text`` stays usable.
    """

    text: str
    json_text: str | None = None
    stopped_at_marker: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def as_object(self) -> dict[str, object] | None:
        if self.json_text is None:
            return None
        try:
            parsed = json.loads(self.json_text)
        except json.JSONDecodeError as exc:
            LOGGER.warning(
                "completion_json_decode_error",
                extra={"error": str(exc), "json_length": len(self.json_text)},
            )
            return None
        if not isinstance(parsed, dict):
            return None
        return {str(key): value for key, value in parsed.items()}

    def text_before(self, marker: str) -> str:
        return self.text.split(marker, 1)[0].strip()


class StreamDecoder:
    """Tracks brace depth across content pieces until one object closes.

    With ``expect_json=False`` braces are plain text: only the stop marker or
    the end of the stream ends decoding.
    """

    def __init__(self, stop_at: str | None = None, *, expect_json: bool = True) -> None:
        self.stop_at = stop_at or None
        self.expect_json = expect_json
        self._depth = 0
        self._buffer: list[str] = []
        self._in_string = False
        self._escaped = False
        self._text: list[str] = []
        self._tail = ""

    @property
    def text(self) -> str:
        return "".join(self._text)

    def decode(self, lines: Iterable[str | bytes]) -> CompletionResult:
        """Consume stream lines, returning as soon as decoding is finished."""
        for raw_line in lines:
            payload = _strip_marker(raw_line)
            if not payload:
                continue
            if payload == STREAM_DONE:
                break
            content = _envelope_content(payload)
            if not content:
                continue
            result = self.feed(content)
            if result is not None:
                return result
        return self.finish()

    def decode_content(self, pieces: Iterable[str]) -> CompletionResult:
        """Same as :meth:`decode` but for bare content strings."""
        for piece in pieces:
            result = self.feed(piece)
            if result is not None:
                return result
        return self.finish()

    def feed(self, content: str) -> CompletionResult | None:
        """Consume one content piece; return a result once decoding stops."""
        for char in content:
            self._text.append(char)
            if self._marker_seen(char):
                return CompletionResult(text=self.text, stopped_at_marker=True)
            if self.expect_json and self._track(char):
                return CompletionResult(text=self.text, json_text="".join(self._buffer))
        return None

    def finish(self) -> CompletionResult:
        """Close out a stream that ended without an early stop."""
        if self.expect_json and self._depth != 0:
            LOGGER.warning(
                "completion_unmatched_braces",
                extra={"depth": self._depth, "text_length": len(self._text)},
            )
            return CompletionResult(text=self.text, error=UNMATCHED_BRACES)
        return CompletionResult(text=self.text)

    def interrupted(self, error: str) -> CompletionResult:
        """Return the partial text after the stream failed mid-read."""
        return CompletionResult(text=self.text, error=error)

    def _marker_seen(self, char: str) -> bool:
        if self.stop_at is None:
            return False
        self._tail = (self._tail + char)[-len(self.stop_at):]
        return self._tail == self.stop_at

    def _track(self, char: str) -> bool:
        if self._depth == 0:
            # Anything outside a top-level object is dropped.
            if char == "{":
                self._depth = 1
                self._buffer.append(char)
            return False

        self._buffer.append(char)
        if self._in_string:
            if self._escaped:
                self._escaped = False
            elif char == "\\":
                self._escaped = True
            elif char == '"':
                self._in_string = False
            return False

        if char == '"':
            self._in_string = True
        elif char == "{":
            self._depth += 1
        elif char == "}":
            self._depth -= 1
            return self._depth == 0
        return False


def _strip_marker(raw_line: str | bytes) -> str:
    line = raw_line.decode("utf-8", errors="replace") if isinstance(raw_line, bytes) else raw_line
    line = line.strip()
    if line.startswith(STREAM_MARKER):
        line = line[len(STREAM_MARKER):].strip()
    return line


def _envelope_content(payload: str) -> str | None:
    try:
        envelope = json.loads(payload)
    except json.JSONDecodeError as exc:
        LOGGER.warning(
            "completion_chunk_parse_error",
            extra={"error": str(exc), "chunk_excerpt": payload[:120]},
        )
        return None
    if not isinstance(envelope, dict):
        return None

    content = envelope.get("content")
    if isinstance(content, str):
        return content

    choices = envelope.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        choice = choices[0]
        text = choice.get("text")
        if isinstance(text, str):
            return text
        delta = choice.get("delta")
        if isinstance(delta, dict) and isinstance(delta.get("content"), str):
            return delta["content"]
    return None
