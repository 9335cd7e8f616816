"""
Multipart Framing
=================

Byte-exact ``multipart/x-mixed-replace`` framing for Motion-JPEG streams.

Wire format (CRLF line endings):

    HTTP/1.1 200 OK
    Content-Type: multipart/x-mixed-replace; boundary=--boundary

then, for every frame:

    <blank line>
    --boundary
    Content-Type: image/jpeg
    Content-Length: <n>
    <blank line>
    <raw bytes><CRLF>

There is no closing boundary; the stream ends when the connection closes.
The server never reads a request line, so the boundary token is fixed at
construction and never negotiated.

The client-side ``read_part`` helper parses this format back into parts and
is used by the client script under scripts/ and the test-suite.
"""

import asyncio
from dataclasses import dataclass
from typing import Dict

from framecast import FramecastError
from framecast.stream.frame import Frame


DEFAULT_BOUNDARY = "--boundary"
CRLF = b"\r\n"


class ProtocolError(FramecastError):
    """Raised by the client-side parser on malformed multipart data."""


def validate_boundary(boundary: str) -> str:
    """
    Check that a boundary token is usable on the wire.

    Args:
        boundary: Candidate token

    Returns:
        The token unchanged.

    Raises:
        ValueError: If empty, non-ASCII, or containing whitespace/control chars
    """
    if not boundary:
        raise ValueError("Boundary token must not be empty")
    if not boundary.isascii():
        raise ValueError(f"Boundary token must be ASCII: {boundary!r}")
    if any(not ch.isprintable() or ch.isspace() for ch in boundary):
        raise ValueError(f"Boundary token must not contain whitespace or control characters: {boundary!r}")
    return boundary


class MultipartFramer:
    """
    Encodes the stream handshake and per-frame chunks.

    Attributes:
        boundary: ASCII boundary token, written verbatim as the delimiter line
    """

    def __init__(self, boundary: str = DEFAULT_BOUNDARY) -> None:
        self.boundary = validate_boundary(boundary)
        self._boundary_bytes = boundary.encode("ascii")
        self._header = (
            b"HTTP/1.1 200 OK" + CRLF
            + b"Content-Type: multipart/x-mixed-replace; boundary=" + self._boundary_bytes + CRLF
        )

    def header(self) -> bytes:
        """Status line and content-type header sent once on connect."""
        return self._header

    def chunk(self, frame: Frame) -> bytes:
        """
        Encode one frame as a multipart chunk.

        Args:
            frame: Frame to encode

        Returns:
            Leading CRLF, boundary line, part headers, blank line,
            payload and trailing CRLF.
        """
        return b"".join((
            CRLF,
            self._boundary_bytes, CRLF,
            b"Content-Type: ", frame.content_type.encode("ascii"), CRLF,
            b"Content-Length: ", str(len(frame.data)).encode("ascii"), CRLF,
            CRLF,
            frame.data,
            CRLF,
        ))


# =============================================================================
# Client-side parsing
# =============================================================================

@dataclass(frozen=True, slots=True)
class MultipartPart:
    """One parsed part of a multipart stream."""

    headers: Dict[str, str]
    data: bytes

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "")

    @property
    def content_length(self) -> int:
        return int(self.headers.get("content-length", len(self.data)))


async def read_handshake(reader: asyncio.StreamReader) -> Dict[str, str]:
    """
    Read the status line and response headers sent on connect.

    Returns:
        Lower-cased header mapping, plus the status line under ``":status"``.

    Raises:
        ProtocolError: If the status line is not a 200 response
        asyncio.IncompleteReadError: If the connection closes first
    """
    status = (await reader.readuntil(CRLF)).rstrip(CRLF).decode("ascii", "replace")
    if not status.startswith("HTTP/1.1 200"):
        raise ProtocolError(f"Unexpected status line: {status!r}")

    headers = {":status": status}
    # The header block has no terminating blank line of its own; the first
    # part supplies it, so only the Content-Type line is read here.
    line = (await reader.readuntil(CRLF)).rstrip(CRLF).decode("ascii", "replace")
    name, _, value = line.partition(":")
    headers[name.strip().lower()] = value.strip()
    return headers


async def read_part(reader: asyncio.StreamReader, boundary: str = DEFAULT_BOUNDARY) -> MultipartPart:
    """
    Read one part from a multipart stream positioned after the handshake.

    Args:
        reader: Stream reader connected to the server
        boundary: Expected boundary token

    Returns:
        Parsed MultipartPart

    Raises:
        ProtocolError: On a missing boundary, bad headers, or missing trailer
        asyncio.IncompleteReadError: If the connection closes mid-part
    """
    delimiter = boundary.encode("ascii")

    line = await reader.readuntil(CRLF)
    if line == CRLF:
        line = await reader.readuntil(CRLF)
    if line.rstrip(CRLF) != delimiter:
        raise ProtocolError(f"Expected boundary {boundary!r}, got {line!r}")

    headers: Dict[str, str] = {}
    while True:
        line = await reader.readuntil(CRLF)
        if line == CRLF:
            break
        name, sep, value = line.rstrip(CRLF).decode("ascii", "replace").partition(":")
        if not sep:
            raise ProtocolError(f"Malformed part header: {line!r}")
        headers[name.strip().lower()] = value.strip()

    try:
        length = int(headers["content-length"])
    except (KeyError, ValueError) as e:
        raise ProtocolError(f"Missing or invalid Content-Length: {e}") from e

    data = await reader.readexactly(length)
    trailer = await reader.readexactly(len(CRLF))
    if trailer != CRLF:
        raise ProtocolError(f"Expected CRLF after payload, got {trailer!r}")

    return MultipartPart(headers=headers, data=data)
