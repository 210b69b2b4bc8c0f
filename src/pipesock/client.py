"""One-shot request/reply client over TCP or UDP.

``connect`` resolves the endpoint, opens a single connection, sends the
payload and returns the reply: a lazily-read ``ByteStream`` for TCP, or the
bytes of a single datagram for UDP. Nothing is retried.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from contextlib import suppress
from dataclasses import dataclass
from typing import Any, Literal, TypeAlias

from pipesock.address import Endpoint, ResolvedAddress, resolve
from pipesock.config import PluginConfig
from pipesock.errors import (
    BindError,
    ConnectError,
    InvalidArgument,
    ReadError,
    ReceiveError,
    SendError,
    TimeoutSettingError,
    WriteError,
    describe_cause,
)
from pipesock.payload import coerce_payload
from pipesock.timeout import DEFAULT_TIMEOUT, Duration, resolve_timeout

__all__ = [
    "CHUNK_SIZE",
    "MAX_DATAGRAM",
    "ByteStream",
    "ClientSession",
    "Reply",
    "Transport",
    "connect",
]

logger = logging.getLogger("pipesock.client")

CHUNK_SIZE = 65536
MAX_DATAGRAM = 65535

Transport: TypeAlias = Literal["tcp", "udp"]


class ByteStream:
    """Reply read incrementally from a live TCP connection.

    Each read waits at most ``timeout`` seconds. The connection closes once
    the peer finishes sending, on the first failed read, or on ``aclose()``.

    Parameters
    ----------
    reader : asyncio.StreamReader
        Read side of the connection.
    writer : asyncio.StreamWriter
        Write side, owned by the stream for closing.
    timeout : float
        Per-read deadline in seconds.
    chunk_size : int
        Upper bound for a single read.

    Examples
    --------
    >>> async with await connect("example.com", 80, request) as reply:
    ...     async for chunk in reply:
    ...         sys.stdout.buffer.write(chunk)
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        *,
        timeout: float,
        chunk_size: int = CHUNK_SIZE,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._timeout = timeout
        self._chunk_size = chunk_size
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def remote_address(self) -> tuple[Any, ...]:
        return self._writer.get_extra_info("peername") or ("unknown", 0)

    @property
    def local_address(self) -> tuple[Any, ...]:
        return self._writer.get_extra_info("sockname") or ("unknown", 0)

    async def read(self, n: int | None = None) -> bytes:
        """Read up to *n* bytes; ``b""`` once the peer has closed.

        Raises
        ------
        ReadError
            If the read fails or does not complete within the timeout.
        """
        if self._closed or n == 0:
            return b""
        size = self._chunk_size if n is None else n
        try:
            chunk = await asyncio.wait_for(self._reader.read(size), self._timeout)
        except OSError as exc:
            await self.aclose()
            raise ReadError(help=describe_cause(exc)) from exc
        if not chunk:
            await self.aclose()
        return chunk

    async def read_all(self) -> bytes:
        """Drain the stream until the peer closes it."""
        chunks: list[bytes] = []
        async for chunk in self:
            chunks.append(chunk)
        return b"".join(chunks)

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._writer.close()
        with suppress(OSError):
            await self._writer.wait_closed()

    def __aiter__(self) -> ByteStream:
        return self

    async def __anext__(self) -> bytes:
        chunk = await self.read()
        if not chunk:
            raise StopAsyncIteration
        return chunk

    async def __aenter__(self) -> ByteStream:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"ByteStream({self.remote_address!r}, {state})"


Reply: TypeAlias = ByteStream | bytes


@dataclass(frozen=True)
class ClientSession:
    """A single connect, send, receive cycle.

    Parameters
    ----------
    endpoint : Endpoint
        Remote host and port.
    transport : Transport
        ``"tcp"`` or ``"udp"``.
    timeout : float
        Seconds allowed for the connect step and for each read.

    Examples
    --------
    >>> session = ClientSession(Endpoint("whois.iana.org", 43))
    >>> reply = await session.execute(b"il\\r\\n")
    >>> text = (await reply.read_all()).decode()
    """

    endpoint: Endpoint
    transport: Transport = "tcp"
    timeout: float = DEFAULT_TIMEOUT

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            raise TimeoutSettingError(
                help=f"Timeout must be a positive duration, got {self.timeout}s",
                argument="timeout",
            )

    async def execute(self, payload: bytes) -> Reply:
        """Send *payload* and return the reply.

        Returns
        -------
        Reply
            A ``ByteStream`` for TCP, the received datagram for UDP.
        """
        match self.transport:
            case "tcp":
                address = await resolve(self.endpoint, kind=socket.SOCK_STREAM)
                return await self._stream(address, payload)
            case "udp":
                address = await resolve(self.endpoint, kind=socket.SOCK_DGRAM)
                return await self._datagram(address, payload)
            case other:
                raise InvalidArgument(
                    "Unsupported transport",
                    help=f"Expected 'tcp' or 'udp', but got {other!r}",
                )

    async def _stream(self, address: ResolvedAddress, payload: bytes) -> ByteStream:
        loop = asyncio.get_running_loop()
        logger.debug("Connecting to %s (%s) over tcp", self.endpoint, address.host)

        try:
            sock = socket.socket(address.family, socket.SOCK_STREAM)
        except OSError as exc:
            raise ConnectError(help=describe_cause(exc)) from exc
        sock.setblocking(False)

        try:
            await asyncio.wait_for(loop.sock_connect(sock, address.sockaddr), self.timeout)
            reader, writer = await asyncio.open_connection(sock=sock)
        except OSError as exc:
            sock.close()
            raise ConnectError(help=describe_cause(exc)) from exc
        except BaseException:
            sock.close()
            raise

        try:
            writer.write(payload)
            await writer.drain()
        except OSError as exc:
            writer.close()
            raise WriteError(help=describe_cause(exc)) from exc
        except BaseException:
            writer.close()
            raise

        logger.debug("Sent %d bytes to %s", len(payload), self.endpoint)
        return ByteStream(reader, writer, timeout=self.timeout)

    async def _datagram(self, address: ResolvedAddress, payload: bytes) -> bytes:
        loop = asyncio.get_running_loop()
        logger.debug("Sending %d bytes to %s (%s) over udp", len(payload), self.endpoint, address.host)

        try:
            sock = socket.socket(address.family, socket.SOCK_DGRAM)
        except OSError as exc:
            raise BindError("Failed to bind UDP socket", help=describe_cause(exc)) from exc

        with sock:
            try:
                sock.setblocking(False)
                sock.bind((address.wildcard, 0))
            except OSError as exc:
                raise BindError("Failed to bind UDP socket", help=describe_cause(exc)) from exc

            try:
                await loop.sock_sendto(sock, payload, address.sockaddr)
            except OSError as exc:
                raise SendError(help=describe_cause(exc)) from exc

            # Any source address is accepted.
            try:
                data, source = await asyncio.wait_for(
                    loop.sock_recvfrom(sock, MAX_DATAGRAM), self.timeout
                )
            except OSError as exc:
                raise ReceiveError(help=describe_cause(exc)) from exc

        logger.debug("Received %d bytes from %s", len(data), source)
        return data


async def connect(
    host: str,
    port: int,
    data: Any = None,
    *,
    udp: bool = False,
    timeout: Duration | None = None,
    config: PluginConfig | None = None,
) -> Reply:
    """Connect to *host*:*port*, send *data* and return the reply.

    Parameters
    ----------
    host : str
        Hostname or IP address.
    port : int
        Port number, 0 to 65535.
    data : str | bytes | None
        Payload. ``None`` sends nothing.
    udp : bool
        Use a single UDP datagram exchange instead of TCP.
    timeout : Duration | None
        Per-call timeout, overriding ``config.client.timeout``.
    config : PluginConfig | None
        Configuration snapshot. Defaults apply when omitted.

    Returns
    -------
    Reply
        ``ByteStream`` for TCP, ``bytes`` for UDP.

    Raises
    ------
    SocketError
        Any of the ``pipesock.errors`` classes; all are terminal for the call.

    Examples
    --------
    >>> reply = await connect("example.com", 80, "GET / HTTP/1.1\\r\\nHost: example.com\\r\\n\\r\\n")
    >>> body = await reply.read_all()
    >>> await connect("127.0.0.1", 9000, "time?", udp=True)
    b'TIME'
    """
    endpoint = Endpoint(host, port)
    config = config or PluginConfig()
    seconds = resolve_timeout(timeout, config.client.timeout)
    payload = coerce_payload(data)
    session = ClientSession(endpoint, "udp" if udp else "tcp", seconds)
    return await session.execute(payload)
