"""
sse_decoder.py — Line framing for the assistant's event stream.

The assistant endpoint relays an OpenAI-style chat completion stream:
    : keep-alive
    data: {"choices":[{"delta":{"content":"Hel"}}]}
    data: [DONE]

Provides:
- LineSplitter: growing text buffer → complete lines, partial tail retained
- classify_line: line → Frame (comment / blank / data / terminator / malformed)
- extract_delta: data payload → text fragment at choices[0].delta.content

Lines are split on LF only; one trailing CR per line is dropped. Unlike a
full W3C event parser there is no event dispatch on blank lines: every
data line stands alone.
"""

import json
from dataclasses import dataclass
from typing import Any, List, Optional

DATA_PREFIX = "data: "
COMMENT_MARKER = ":"
DONE_SENTINEL = "[DONE]"

# Frame kinds
COMMENT = "comment"
BLANK = "blank"
DATA = "data"
TERMINATOR = "terminator"
MALFORMED = "malformed"


@dataclass(frozen=True)
class Frame:
    """One classified protocol line."""
    kind: str
    payload: Optional[str] = None


class LineSplitter:
    """Turns decoded text into complete lines across chunk boundaries."""

    def __init__(self) -> None:
        self._buffer = ""

    @property
    def pending(self) -> str:
        """Text received but not yet emitted as a line."""
        return self._buffer

    def feed(self, text: str) -> List[str]:
        """Append text and return every line now terminated by LF.

        The unterminated tail stays buffered for the next call.
        """
        self._buffer += text
        if "\n" not in self._buffer:
            return []

        *lines, self._buffer = self._buffer.split("\n")
        return [_strip_cr(line) for line in lines]

    def unread(self, lines: List[str]) -> None:
        """Push complete lines back in front of the buffered text."""
        if lines:
            self._buffer = "".join(line + "\n" for line in lines) + self._buffer

    def flush(self) -> List[str]:
        """Emit everything still buffered, terminated or not. Empties the buffer."""
        remaining, self._buffer = self._buffer, ""
        if not remaining:
            return []
        return [_strip_cr(line) for line in remaining.split("\n")]


def _strip_cr(line: str) -> str:
    return line[:-1] if line.endswith("\r") else line


def classify_line(line: str) -> Frame:
    """Classify a single line (already stripped of its terminator)."""
    if line.startswith(COMMENT_MARKER):
        return Frame(COMMENT)
    if not line.strip():
        return Frame(BLANK)
    if not line.startswith(DATA_PREFIX):
        # Protocol noise: neither comment nor payload
        return Frame(MALFORMED)

    payload = line[len(DATA_PREFIX):].strip()
    if payload == DONE_SENTINEL:
        return Frame(TERMINATOR)
    return Frame(DATA, payload)


def extract_delta(payload: str) -> Optional[str]:
    """Parse a data payload and return its content delta, if any.

    Raises ValueError (json.JSONDecodeError) when the payload is not JSON.
    Any missing or ill-typed level on the choices[0].delta.content path
    yields None, as does an empty string.
    """
    parsed = json.loads(payload)

    choices = _get(parsed, "choices")
    if not isinstance(choices, list) or not choices:
        return None
    delta = _get(choices[0], "delta")
    content = _get(delta, "content")
    if isinstance(content, str) and content:
        return content
    return None


def _get(value: Any, key: str) -> Any:
    return value.get(key) if isinstance(value, dict) else None
