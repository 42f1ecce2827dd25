"""
Inbound message framing.

RAW hands every received chunk to the consumer unchanged, so message
boundaries are wherever TCP happened to split the stream. LINE buffers until
a newline and hands over one complete line (delimiter included) at a time.
"""

from typing import List

from securelink.common.protocol import Framing, LINE_DELIMITER, MAX_LINE_BYTES


class RawFramer:
    """Pass-through framer."""

    def feed(self, data: bytes) -> List[bytes]:
        return [data] if data else []

    def flush(self) -> List[bytes]:
        return []


class LineFramer:
    """
    Splits a byte stream into newline-terminated messages.

    A line that grows past max_line_bytes without a delimiter is handed over
    as-is so one peer cannot make the buffer grow without bound.
    """

    def __init__(self, delimiter: bytes = LINE_DELIMITER, max_line_bytes: int = MAX_LINE_BYTES):
        if not delimiter:
            raise ValueError("delimiter must not be empty")
        self.delimiter = delimiter
        self.max_line_bytes = max_line_bytes
        self._buffer = bytearray()

    @property
    def pending(self) -> int:
        """Bytes buffered while waiting for a delimiter."""
        return len(self._buffer)

    def feed(self, data: bytes) -> List[bytes]:
        """Add received bytes; return every message that is now complete."""
        self._buffer += data
        messages = []
        start = 0
        while True:
            end = self._buffer.find(self.delimiter, start)
            if end < 0:
                break
            end += len(self.delimiter)
            messages.append(bytes(self._buffer[start:end]))
            start = end
        del self._buffer[:start]

        while len(self._buffer) >= self.max_line_bytes:
            messages.append(bytes(self._buffer[:self.max_line_bytes]))
            del self._buffer[:self.max_line_bytes]
        return messages

    def flush(self) -> List[bytes]:
        """Return the trailing partial line, if any, and reset."""
        if not self._buffer:
            return []
        rest = bytes(self._buffer)
        self._buffer.clear()
        return [rest]


def make_framer(framing: Framing):
    if Framing(framing) is Framing.LINE:
        return LineFramer()
    return RawFramer()
