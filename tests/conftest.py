"""Shared loopback peers and fixtures for pipesock tests."""

import asyncio
import socket
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Any, TypeAlias

import pytest

from pipesock import Server


@dataclass
class Peer:
    """A test peer listening on the loopback interface."""

    host: str
    port: int
    received: list[bytes] = field(default_factory=list)


# TCP peers


@pytest.fixture
async def echo_server() -> AsyncIterator[Peer]:
    """Reads one request, writes it back verbatim and closes."""
    peer = Peer("127.0.0.1", 0)

    async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        data = await reader.read(4096)
        peer.received.append(data)
        writer.write(data)
        await writer.drain()
        writer.close()
        await writer.wait_closed()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    peer.port = server.sockets[0].getsockname()[1]
    yield peer
    server.close()
    await server.wait_closed()


@pytest.fixture
async def silent_server() -> AsyncIterator[Peer]:
    """Accepts and reads, but never replies until teardown."""
    peer = Peer("127.0.0.1", 0)
    release = asyncio.Event()

    async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        peer.received.append(await reader.read(4096))
        await release.wait()
        writer.close()
        with suppress(OSError):
            await writer.wait_closed()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    peer.port = server.sockets[0].getsockname()[1]
    yield peer
    release.set()
    server.close()
    await server.wait_closed()


@pytest.fixture
def closed_port() -> int:
    """A loopback port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


# UDP peers


class _Responder(asyncio.DatagramProtocol):
    def __init__(self, peer: Peer, reply: bytes | None) -> None:
        self.peer = peer
        self.reply = reply
        self.transport: asyncio.DatagramTransport | None = None

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self.transport = transport  # type: ignore[assignment]

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        self.peer.received.append(data)
        if self.reply is not None and self.transport is not None:
            self.transport.sendto(self.reply, addr)


async def _udp_peer(reply: bytes | None) -> tuple[Peer, asyncio.DatagramTransport]:
    loop = asyncio.get_running_loop()
    peer = Peer("127.0.0.1", 0)
    transport, _ = await loop.create_datagram_endpoint(
        lambda: _Responder(peer, reply),
        local_addr=("127.0.0.1", 0),
    )
    peer.port = transport.get_extra_info("sockname")[1]
    return peer, transport


@pytest.fixture
async def udp_responder() -> AsyncIterator[Peer]:
    """Answers every datagram with the fixed 4-byte payload ``TIME``."""
    peer, transport = await _udp_peer(b"TIME")
    yield peer
    transport.close()


@pytest.fixture
async def udp_silent() -> AsyncIterator[Peer]:
    """Receives datagrams and never answers."""
    peer, transport = await _udp_peer(None)
    yield peer
    transport.close()


# Server under test


StartServer: TypeAlias = Callable[..., Awaitable[tuple[Server, asyncio.Task[None]]]]


@pytest.fixture
async def start_server() -> AsyncIterator[StartServer]:
    """Bind a ``Server`` on an ephemeral loopback port and run it in a task."""
    started: list[tuple[Server, asyncio.Task[None]]] = []

    async def start(callback: Any, **kwargs: Any) -> tuple[Server, asyncio.Task[None]]:
        server = Server("127.0.0.1", 0, callback, **kwargs)
        server.bind()
        task = asyncio.create_task(server.run())
        started.append((server, task))
        await asyncio.sleep(0)
        return server, task

    yield start

    for server, task in started:
        server.stop()
        with suppress(Exception):
            await asyncio.wait_for(task, 1.0)
        with suppress(Exception):
            await asyncio.wait_for(server.join(), 2.0)


Exchange: TypeAlias = Callable[..., Awaitable[bytes]]


async def _exchange(port: int, data: bytes, *, timeout: float = 2.0) -> bytes:
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    try:
        writer.write(data)
        await writer.drain()
        return await asyncio.wait_for(reader.read(), timeout)
    finally:
        writer.close()
        with suppress(OSError):
            await writer.wait_closed()


@pytest.fixture
def exchange() -> Exchange:
    """Raw client: send bytes to a loopback port, read until the peer closes."""
    return _exchange
