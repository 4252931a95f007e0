"""
Tests for the line reassembler.
"""

from __future__ import annotations

from assuan_client.framing import LineReassembler


class TestLineReassembler:
    """Tests for LineReassembler.feed."""

    def test_single_complete_line(self) -> None:
        """Test a chunk holding exactly one line."""
        reassembler = LineReassembler()
        assert reassembler.feed(b"OK\n") == [b"OK"]
        assert reassembler.pending == 0

    def test_line_split_across_chunks(self) -> None:
        """Test a line split over two chunks is emitted once, whole."""
        reassembler = LineReassembler()

        assert reassembler.feed(b"OK Plea") == []
        assert reassembler.pending == 7
        assert reassembler.feed(b"sed\n") == [b"OK Pleased"]
        assert reassembler.pending == 0

    def test_multiple_lines_in_one_chunk(self) -> None:
        """Test every line in a chunk comes out in order."""
        reassembler = LineReassembler()
        lines = reassembler.feed(b"# hi\nS PROGRESS 1\nD abc\nOK\n")
        assert lines == [b"# hi", b"S PROGRESS 1", b"D abc", b"OK"]

    def test_trailing_partial_line_kept(self) -> None:
        """Test bytes after the last terminator wait for the next chunk."""
        reassembler = LineReassembler()

        assert reassembler.feed(b"OK\nERR 1 some") == [b"OK"]
        assert reassembler.pending == len(b"ERR 1 some")
        assert reassembler.feed(b" error\n") == [b"ERR 1 some error"]

    def test_byte_at_a_time(self) -> None:
        """Test feeding one byte per chunk yields the same lines."""
        reassembler = LineReassembler()
        stream = b"OK Pleased to meet you\nD %0A\nOK\n"

        lines: list[bytes] = []
        for value in stream:
            lines.extend(reassembler.feed(bytes([value])))

        assert lines == [b"OK Pleased to meet you", b"D %0A", b"OK"]
        assert reassembler.pending == 0

    def test_empty_lines(self) -> None:
        """Test consecutive terminators produce empty lines."""
        reassembler = LineReassembler()
        assert reassembler.feed(b"\n\n") == [b"", b""]

    def test_empty_chunk(self) -> None:
        """Test an empty chunk changes nothing."""
        reassembler = LineReassembler()
        reassembler.feed(b"OK")
        assert reassembler.feed(b"") == []
        assert reassembler.pending == 2

    def test_carriage_return_preserved(self) -> None:
        """Test only LF terminates; a CR stays part of the line."""
        reassembler = LineReassembler()
        assert reassembler.feed(b"OK\r\n") == [b"OK\r"]

    def test_no_terminator_never_emits(self) -> None:
        """Test unterminated data is never emitted, however long."""
        reassembler = LineReassembler()
        for _ in range(100):
            assert reassembler.feed(b"D " + b"x" * 100) == []
        assert reassembler.pending == 100 * 102

    def test_reset_drops_partial(self) -> None:
        """Test reset discards buffered bytes."""
        reassembler = LineReassembler()
        reassembler.feed(b"OK Plea")
        reassembler.reset()
        assert reassembler.pending == 0
        assert reassembler.feed(b"OK\n") == [b"OK"]
