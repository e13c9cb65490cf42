"""FrameReader unit tests.

Test coverage:
- Records split at arbitrary chunk boundaries
- Lazy extraction of buffered records
- Truncated trailing fragments
- Oversized fragments (FrameTooLarge)
- iter_records over an asyncio.StreamReader
"""

from __future__ import annotations

import asyncio

import pytest

from audio_monitor.errors import FrameTooLarge
from audio_monitor.runtime.framing import FrameReader, iter_records


RECORDS = [
    '{"id":"a","name":"Speakers","volume":50,"muted":false}',
    '{"id":"a","name":"Speakers","volume":60,"muted":false}',
    '{"id":"b","name":"Наушники","volume":7,"muted":true}',
]
STREAM = "".join(r + "\n" for r in RECORDS).encode("utf-8")


def feed_in_chunks(data: bytes, size: int) -> list[str]:
    reader = FrameReader()
    out: list[str] = []
    for start in range(0, len(data), size):
        out.extend(reader.feed(data[start : start + size]))
    reader.close()
    return out


class TestChunkBoundaries:
    """Records come out whole no matter how the bytes were split."""

    def test_single_chunk(self):
        assert feed_in_chunks(STREAM, len(STREAM)) == RECORDS

    def test_every_chunk_size(self):
        # Covers boundaries inside records, on newlines and inside
        # multi-byte characters
        for size in range(1, len(STREAM) + 1):
            assert feed_in_chunks(STREAM, size) == RECORDS, f"chunk size {size}"

    def test_record_spanning_three_chunks(self):
        reader = FrameReader()
        assert list(reader.feed(b'{"id":')) == []
        assert list(reader.feed(b'"a","name":"x",')) == []
        assert list(reader.feed(b'"volume":1,"muted":true}\n')) == [
            '{"id":"a","name":"x","volume":1,"muted":true}'
        ]
        assert reader.pending == 0

    def test_crlf_terminator(self):
        reader = FrameReader()
        assert list(reader.feed(b"one\r\ntwo\r\n")) == ["one", "two"]

    def test_empty_lines_are_records(self):
        reader = FrameReader()
        assert list(reader.feed(b"\n\nx\n")) == ["", "", "x"]


class TestBuffering:
    """Accumulation buffer behaviour."""

    def test_feed_is_lazy(self):
        reader = FrameReader()
        records = reader.feed(b"a\nb\n")
        assert next(records) == "a"
        # "b\n" is still buffered until consumed
        assert reader.pending == 2
        assert list(reader.feed(b"c\n")) == ["b", "c"]

    def test_close_discards_partial_fragment(self):
        reader = FrameReader()
        assert list(reader.feed(b"done\npart")) == ["done"]
        assert reader.close() == 4
        assert reader.pending == 0
        assert reader.closed

    def test_feed_after_close_raises(self):
        reader = FrameReader()
        reader.close()
        with pytest.raises(RuntimeError):
            reader.feed(b"x\n")


class TestFrameTooLarge:
    """Unterminated data beyond max_frame_size."""

    def test_oversized_fragment_raises(self):
        reader = FrameReader(max_frame_size=16)
        records = reader.feed(b"x" * 17)
        assert reader.pending == 0
        with pytest.raises(FrameTooLarge) as exc_info:
            list(records)
        assert exc_info.value.size == 17
        assert exc_info.value.limit == 16

    def test_fragment_at_limit_is_kept(self):
        reader = FrameReader(max_frame_size=16)
        assert list(reader.feed(b"x" * 16)) == []
        assert reader.pending == 16

    def test_complete_records_come_out_before_the_error(self):
        reader = FrameReader(max_frame_size=8)
        records: list[str] = []
        with pytest.raises(FrameTooLarge):
            for record in reader.feed(b"ok\nfine\n" + b"y" * 9):
                records.append(record)
        assert records == ["ok", "fine"]
        assert reader.pending == 0

    def test_limit_applies_to_accumulated_fragment(self):
        reader = FrameReader(max_frame_size=10)
        list(reader.feed(b"12345"))
        with pytest.raises(FrameTooLarge):
            list(reader.feed(b"678901"))


class TestIterRecords:
    """iter_records over a real StreamReader."""

    @pytest.mark.asyncio
    async def test_yields_records_until_eof(self):
        stream = asyncio.StreamReader()
        stream.feed_data(b"first\nsec")
        stream.feed_data(b"ond\nthi")
        stream.feed_eof()

        records = [record async for record in iter_records(stream)]

        # "thi" is a truncated record and is dropped
        assert records == ["first", "second"]

    @pytest.mark.asyncio
    async def test_closes_given_reader(self):
        stream = asyncio.StreamReader()
        stream.feed_data(b"a\nleftover")
        stream.feed_eof()
        reader = FrameReader()

        records = [record async for record in iter_records(stream, reader)]

        assert records == ["a"]
        assert reader.closed

    @pytest.mark.asyncio
    async def test_propagates_frame_too_large(self):
        stream = asyncio.StreamReader()
        stream.feed_data(b"z" * 64)
        stream.feed_eof()

        with pytest.raises(FrameTooLarge):
            async for _ in iter_records(stream, FrameReader(max_frame_size=32)):
                pass

    @pytest.mark.asyncio
    async def test_records_before_oversized_fragment_are_yielded(self):
        stream = asyncio.StreamReader()
        stream.feed_data(b'{"id":"a"}\n' + b"y" * 100)
        stream.feed_eof()
        records: list[str] = []

        with pytest.raises(FrameTooLarge):
            async for record in iter_records(stream, FrameReader(max_frame_size=64)):
                records.append(record)

        assert records == ['{"id":"a"}']
