"""
Line reassembly for the inbound byte stream.

The transport hands over chunks of whatever size the kernel produced; a
chunk can end mid-line or carry several lines. LineReassembler keeps the
unterminated tail between calls, so only complete lines ever come out.
"""

from __future__ import annotations

from assuan_client.protocol import LINE_TERMINATOR


class LineReassembler:
    """
    Incremental splitter of a byte stream into LF-terminated lines.

    Example:
        >>> reassembler = LineReassembler()
        >>> reassembler.feed(b"OK Plea")
        []
        >>> reassembler.feed(b"sed\\nS PROGRESS")
        [b'OK Pleased']
        >>> reassembler.pending
        10
    """

    def __init__(self) -> None:
        self._buffer = bytearray()
        # Offset up to which the buffer is known to hold no terminator
        self._scanned = 0

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet part of a complete line."""
        return len(self._buffer)

    def feed(self, chunk: bytes) -> list[bytes]:
        """
        Add a chunk and return every line it completes, oldest first.

        Returned lines exclude the terminator. Bytes after the last
        terminator stay buffered for the next call.
        """
        self._buffer.extend(chunk)

        lines: list[bytes] = []
        start = 0
        search_from = self._scanned
        while True:
            index = self._buffer.find(LINE_TERMINATOR, search_from)
            if index == -1:
                break
            lines.append(bytes(self._buffer[start:index]))
            start = search_from = index + len(LINE_TERMINATOR)

        if start:
            del self._buffer[:start]
        self._scanned = len(self._buffer)
        return lines

    def reset(self) -> None:
        """Drop any buffered partial line."""
        self._buffer.clear()
        self._scanned = 0
