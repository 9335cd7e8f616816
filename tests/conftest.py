"""
Test Configuration
==================

Pytest fixtures and helpers for framecast.
"""

import asyncio
import time
from typing import Callable, Tuple

import pytest
import pytest_asyncio

from framecast.server import StreamingServer
from framecast.stream import FrameCache, read_handshake, read_part


# Smallest well-formed JPEG shell: SOI + EOI
TINY_JPEG = b"\xff\xd8\xff\xd9"


def versioned_payload(version: int) -> bytes:
    """JPEG-shaped payload that carries its version for assertions."""
    return b"\xff\xd8" + f"v{version}".encode("ascii") + b"\xff\xd9"


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.01) -> bool:
    """Poll predicate until it returns True or the timeout elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()


async def publish_until(cache, predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.02) -> bool:
    """
    Keep publishing new frames until predicate holds.

    A closed peer is only noticed when a write to it fails, so tests that
    wait for a disconnect must keep the stream moving.
    """
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        cache.publish(versioned_payload(cache.version + 1))
        await asyncio.sleep(interval)
    return predicate()


async def read_until_version(reader: asyncio.StreamReader, version: int, timeout: float = 5.0):
    """Read parts until the one carrying ``version``; return it."""

    async def _read():
        while True:
            part = await read_part(reader)
            if part.data == versioned_payload(version):
                return part

    return await asyncio.wait_for(_read(), timeout=timeout)


async def connect_client(
    port: int,
    read_header: bool = True,
) -> Tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    """Open a client connection, optionally consuming the handshake."""
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    if read_header:
        await asyncio.wait_for(read_handshake(reader), timeout=2.0)
    return reader, writer


@pytest.fixture
def cache():
    """Provide an empty FrameCache."""
    return FrameCache()


@pytest_asyncio.fixture
async def server(cache):
    """Provide a started StreamingServer on an ephemeral loopback port."""
    srv = StreamingServer(
        cache,
        host="127.0.0.1",
        poll_interval=0.01,
        write_timeout=2.0,
        shutdown_timeout=2.0,
    )
    await srv.start(0)
    yield srv
    await srv.stop()
