"""Conversion of request and reply values to raw bytes."""

from __future__ import annotations

from typing import Any

from pipesock.errors import InvalidArgument, ProtocolError


def _type_name(value: Any) -> str:
    if value is None:
        return "nothing"
    return type(value).__name__


def coerce_payload(value: Any) -> bytes:
    """Turn client input into the bytes to send.

    ``None`` is an empty payload, strings are UTF-8 encoded.

    Raises
    ------
    InvalidArgument
        For any value that is not a string, bytes-like or ``None``.
    """
    match value:
        case None:
            return b""
        case str():
            return value.encode("utf-8")
        case bytes() | bytearray() | memoryview():
            return bytes(value)
        case _:
            raise InvalidArgument(
                "Unsupported input type",
                help=f"Expected string or binary, but got {_type_name(value)}",
                argument="input",
                label="input originates from here",
            )


def coerce_reply(value: Any) -> bytes:
    """Turn a callback result into the bytes written back to the peer.

    Raises
    ------
    ProtocolError
        If the callback returned anything other than a string or bytes-like.
    """
    match value:
        case str():
            return value.encode("utf-8")
        case bytes() | bytearray() | memoryview():
            return bytes(value)
        case _:
            raise ProtocolError(
                help=(
                    f"Expected string or binary from closure, but got {_type_name(value)}. "
                    "The closure for `socket listen` must return a string or binary value."
                ),
                argument="callback",
            )
