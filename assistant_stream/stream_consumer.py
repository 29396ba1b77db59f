"""stream_consumer.py — Bytes → deltas for one streamed assistant reply.

Wires ByteTextDecoder → LineSplitter → classify_line → extract_delta.

Two passes with different recovery rules:
- feed(): a data line that fails to parse is treated as a payload split by
  the network. It goes back to the front of the buffer together with every
  line after it, and the pass stops until more bytes arrive.
- finish(): the same filtering, but an unparseable payload is unrecoverable
  and is dropped.

A terminator ends the current pass; nothing after it is ever applied.
"""

from __future__ import annotations

import logging
from typing import List

from .errors import MALFORMED_FINAL_PAYLOAD
from .sse_decoder import DATA, TERMINATOR, LineSplitter, classify_line, extract_delta
from .text_decoder import ByteTextDecoder

logger = logging.getLogger("assistant_stream.stream_consumer")


class StreamConsumer:
    """Incremental consumer for one session's byte stream."""

    def __init__(self) -> None:
        self._decoder = ByteTextDecoder()
        self._splitter = LineSplitter()
        self.terminated = False
        self.discarded = 0

    @property
    def pending_text(self) -> str:
        return self._splitter.pending

    def feed(self, chunk: bytes) -> List[str]:
        """Consume one network chunk. Returns deltas in arrival order."""
        if self.terminated:
            return []
        lines = self._splitter.feed(self._decoder.decode(chunk))
        return self._drain(lines, final=False)

    def finish(self) -> List[str]:
        """End-of-stream flush. Returns any deltas left in the buffer."""
        if self.terminated:
            return []
        tail = self._decoder.flush()
        if tail:
            self._splitter.feed(tail)
        return self._drain(self._splitter.flush(), final=True)

    def _drain(self, lines: List[str], final: bool) -> List[str]:
        deltas: List[str] = []
        for index, line in enumerate(lines):
            frame = classify_line(line)

            if frame.kind == TERMINATOR:
                self.terminated = True
                self._splitter.flush()
                break
            if frame.kind != DATA:
                continue

            try:
                delta = extract_delta(frame.payload)
            except ValueError:
                if final:
                    self.discarded += 1
                    logger.debug(
                        "Discarding unparseable payload at end of stream (%s): %.80s",
                        MALFORMED_FINAL_PAYLOAD,
                        frame.payload,
                    )
                    continue
                self._splitter.unread(lines[index:])
                break

            if delta:
                deltas.append(delta)
        return deltas
