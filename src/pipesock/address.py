"""Endpoints and name resolution.

Provides ``Endpoint``, a validated ``(host, port)`` pair, and ``resolve``,
which turns an endpoint into the first address the system resolver yields.
Nothing is cached; every call resolves again.
"""

from __future__ import annotations

import asyncio
import socket
from dataclasses import dataclass
from typing import Any

from pipesock.errors import InvalidArgument, NoAddressError, ResolutionError, describe_cause

MAX_PORT = 65535


@dataclass(frozen=True)
class Endpoint:
    """A host and port prior to resolution.

    Parameters
    ----------
    host : str
        Hostname or IP literal.
    port : int
        Port number, 0 to 65535 inclusive.

    Raises
    ------
    InvalidArgument
        If *port* is not an integer in range. Values are never truncated.

    Examples
    --------
    >>> str(Endpoint("example.com", 80))
    'example.com:80'
    >>> str(Endpoint("::1", 8080))
    '[::1]:8080'
    """

    host: str
    port: int

    def __post_init__(self) -> None:
        if not isinstance(self.host, str):
            raise InvalidArgument(
                "Invalid host",
                help=f"Expected a string, but got {type(self.host).__name__}",
                argument="host",
            )
        port = self.port
        if isinstance(port, bool) or not isinstance(port, int):
            raise InvalidArgument(
                "Invalid port number",
                help=f"Port must be an integer, but got {type(port).__name__}",
                argument="port",
            )
        if not 0 <= port <= MAX_PORT:
            raise InvalidArgument(
                "Invalid port number",
                help=(
                    f"Port must be between 0 and {MAX_PORT}. "
                    f"Error: {port} is out of range"
                ),
                argument="port",
            )

    def __str__(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class ResolvedAddress:
    """A concrete socket address picked from resolver output.

    Parameters
    ----------
    family : socket.AddressFamily
        ``AF_INET`` or ``AF_INET6``.
    host : str
        Numeric address.
    port : int
        Port number.
    sockaddr : tuple
        Address tuple suitable for ``connect``/``sendto`` on a socket of
        *family* (IPv6 tuples keep flow info and scope id).
    """

    family: socket.AddressFamily
    host: str
    port: int
    sockaddr: tuple[Any, ...]

    @property
    def wildcard(self) -> str:
        """Unspecified local address of the same family."""
        return "::" if self.family == socket.AF_INET6 else "0.0.0.0"


async def resolve(
    endpoint: Endpoint,
    *,
    kind: socket.SocketKind = socket.SOCK_STREAM,
) -> ResolvedAddress:
    """Resolve *endpoint* and return the first address found.

    Parameters
    ----------
    endpoint : Endpoint
        Host and port to resolve.
    kind : socket.SocketKind
        ``SOCK_STREAM`` for TCP, ``SOCK_DGRAM`` for UDP. Restricts results to
        one entry per address.

    Returns
    -------
    ResolvedAddress

    Raises
    ------
    ResolutionError
        If the resolver fails (unknown host, malformed name).
    NoAddressError
        If resolution succeeds with an empty result.
    """
    loop = asyncio.get_running_loop()
    try:
        infos = await loop.getaddrinfo(endpoint.host, endpoint.port, type=kind)
    except (OSError, UnicodeError) as exc:
        raise ResolutionError(
            help=describe_cause(exc), argument="host", label="for this host"
        ) from exc

    if not infos:
        raise NoAddressError(argument="host", label="for this host")

    family, _, _, _, sockaddr = infos[0]
    return ResolvedAddress(
        family=socket.AddressFamily(family),
        host=sockaddr[0],
        port=sockaddr[1],
        sockaddr=tuple(sockaddr),
    )
