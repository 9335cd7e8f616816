"""
Multipart Framing Tests
=======================

Byte-exact handshake and chunk encoding, plus the client-side parser.
"""

import asyncio

import pytest

from framecast.stream import (
    Frame,
    MultipartFramer,
    ProtocolError,
    read_handshake,
    read_part,
    validate_boundary,
)

from .conftest import TINY_JPEG


def _reader_with(data: bytes) -> asyncio.StreamReader:
    reader = asyncio.StreamReader()
    reader.feed_data(data)
    reader.feed_eof()
    return reader


class TestMultipartFramer:
    """Wire encoding."""

    def test_handshake_bytes(self):
        framer = MultipartFramer()
        assert framer.header() == (
            b"HTTP/1.1 200 OK\r\n"
            b"Content-Type: multipart/x-mixed-replace; boundary=--boundary\r\n"
        )

    def test_chunk_bytes(self):
        framer = MultipartFramer("--boundary")
        frame = Frame(data=TINY_JPEG, version=1)
        assert framer.chunk(frame) == (
            b"\r\n--boundary\r\n"
            b"Content-Type: image/jpeg\r\n"
            b"Content-Length: 4\r\n"
            b"\r\n"
            b"\xff\xd8\xff\xd9\r\n"
        )

    def test_custom_boundary(self):
        framer = MultipartFramer("frame")
        assert framer.header().endswith(b"boundary=frame\r\n")
        assert framer.chunk(Frame(data=b"x", version=1)).startswith(b"\r\nframe\r\n")

    @pytest.mark.parametrize("bad", ["", "two words", "line\r\nbreak", "café", "tab\there"])
    def test_invalid_boundary_rejected(self, bad):
        with pytest.raises(ValueError):
            MultipartFramer(bad)

    def test_validate_boundary_returns_token(self):
        assert validate_boundary("--myboundary") == "--myboundary"


class TestClientParser:
    """read_handshake / read_part."""

    @pytest.mark.asyncio
    async def test_parses_handshake_and_parts(self):
        framer = MultipartFramer()
        stream = (
            framer.header()
            + framer.chunk(Frame(data=b"\xff\xd8one\xff\xd9", version=1))
            + framer.chunk(Frame(data=b"\xff\xd8two\xff\xd9", version=2))
        )
        reader = _reader_with(stream)

        headers = await read_handshake(reader)
        assert headers[":status"] == "HTTP/1.1 200 OK"
        assert headers["content-type"] == "multipart/x-mixed-replace; boundary=--boundary"

        first = await read_part(reader)
        second = await read_part(reader)
        assert first.data == b"\xff\xd8one\xff\xd9"
        assert first.content_type == "image/jpeg"
        assert first.content_length == 7
        assert second.data == b"\xff\xd8two\xff\xd9"

        with pytest.raises(asyncio.IncompleteReadError):
            await read_part(reader)

    @pytest.mark.asyncio
    async def test_wrong_boundary(self):
        framer = MultipartFramer("--other")
        reader = _reader_with(framer.chunk(Frame(data=TINY_JPEG, version=1)))
        with pytest.raises(ProtocolError):
            await read_part(reader, "--boundary")

    @pytest.mark.asyncio
    async def test_missing_content_length(self):
        reader = _reader_with(b"\r\n--boundary\r\nContent-Type: image/jpeg\r\n\r\nabc\r\n")
        with pytest.raises(ProtocolError):
            await read_part(reader)

    @pytest.mark.asyncio
    async def test_bad_status_line(self):
        reader = _reader_with(b"HTTP/1.1 404 Not Found\r\n")
        with pytest.raises(ProtocolError):
            await read_handshake(reader)
