from __future__ import annotations

import codecs


class LineFramer:
    """Split a chunked byte stream into complete text lines.

    Decoding is incremental, so a multi-byte character split across two
    chunks is decoded once both halves have arrived. The trailing fragment
    after the last newline is held until the next chunk (or ``flush``).
    """

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    @property
    def pending(self) -> str:
        """Buffered text that has not been terminated by a newline yet."""
        return self._buffer

    def feed(self, chunk: bytes) -> list[str]:
        self._buffer += self._decoder.decode(chunk)
        return self._drain()

    def flush(self) -> list[str]:
        """Finish decoding and return the unterminated tail, if any."""
        self._buffer += self._decoder.decode(b"", final=True)
        lines = self._drain()
        tail, self._buffer = self._buffer, ""
        if tail:
            lines.append(tail.rstrip("\r"))
        return lines

    def _drain(self) -> list[str]:
        if "\n" not in self._buffer:
            return []
        *lines, self._buffer = self._buffer.split("\n")
        return [line.rstrip("\r") for line in lines]
