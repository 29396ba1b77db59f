"""text_decoder.py — Incremental UTF-8 decoding of network chunks.

A multi-byte character split across two chunks is held back until the
rest of its bytes arrive. flush() runs the final decode at end-of-stream,
where a truly truncated sequence becomes U+FFFD instead of an error.
"""

import codecs


class ByteTextDecoder:
    """Chunk-safe bytes → str decoder. Never raises."""

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")

    def decode(self, chunk: bytes) -> str:
        """Return the decodable prefix of everything received so far."""
        return self._decoder.decode(chunk, final=False)

    def flush(self) -> str:
        """Final decode pass. Returns whatever was still held back."""
        text = self._decoder.decode(b"", final=True)
        self._decoder.reset()
        return text
