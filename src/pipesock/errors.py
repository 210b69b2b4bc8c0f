"""Structured errors raised by the client and server operations.

Every error carries a short ``title``, a human-readable ``help`` string
(usually the underlying OS error text) and, for argument-related failures,
the name of the input it concerns.
"""

from __future__ import annotations

from typing import Any, Literal, TypeAlias

__all__ = [
    "AcceptError",
    "Argument",
    "BindError",
    "CallbackError",
    "ConnectError",
    "InvalidArgument",
    "NoAddressError",
    "ProtocolError",
    "ReadError",
    "ReceiveError",
    "ResolutionError",
    "SendError",
    "SocketError",
    "TimeoutSettingError",
    "WriteError",
    "describe_cause",
]


Argument: TypeAlias = Literal["host", "port", "timeout", "input", "callback"]


class SocketError(Exception):
    """Base class for every failure surfaced by ``pipesock``.

    Parameters
    ----------
    title : str
        Short description of the failed step.
    help : str | None
        Human-readable cause, typically the OS error text.
    argument : Argument | None
        Which input the failure relates to, if any.
    label : str
        Pointer text shown next to the offending input.

    Examples
    --------
    >>> err = ConnectError("Connection timed out or failed", help="refused")
    >>> str(err)
    'Connection timed out or failed: refused'
    """

    default_title: str = "Socket error"

    def __init__(
        self,
        title: str | None = None,
        *,
        help: str | None = None,
        argument: Argument | None = None,
        label: str = "here",
    ) -> None:
        self.title = title or self.default_title
        self.help = help
        self.argument = argument
        self.label = label
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.help:
            return f"{self.title}: {self.help}"
        return self.title

    def to_dict(self) -> dict[str, Any]:
        """Plain mapping for the embedding layer."""
        return {
            "kind": type(self).__name__,
            "title": self.title,
            "help": self.help,
            "argument": self.argument,
            "label": self.label,
        }


class InvalidArgument(SocketError):
    default_title = "Invalid argument"


class ResolutionError(SocketError):
    default_title = "Failed to resolve host"


class NoAddressError(ResolutionError):
    default_title = "No IP addresses found for host"


class BindError(SocketError):
    default_title = "Failed to bind to address"


class ConnectError(SocketError):
    default_title = "Connection timed out or failed"


class TimeoutSettingError(SocketError):
    default_title = "Failed to set timeout"


class WriteError(SocketError):
    default_title = "Failed to write to socket"


class SendError(WriteError):
    default_title = "Failed to send UDP packet"


class ReadError(SocketError):
    default_title = "Failed to read from socket"


class ReceiveError(ReadError):
    default_title = "Failed to receive UDP packet (timed out?)"


class ProtocolError(SocketError):
    default_title = "Unsupported closure output"


class CallbackError(SocketError):
    default_title = "Callback failed"


class AcceptError(SocketError):
    default_title = "Error accepting connection"


def describe_cause(exc: BaseException) -> str:
    """Render *exc* as cause text.

    Timeouts raised by ``asyncio.wait_for`` carry no message, so they get a
    fixed one and read like any other I/O failure.

    Examples
    --------
    >>> describe_cause(TimeoutError())
    'operation timed out'
    >>> describe_cause(ConnectionRefusedError(111, "Connection refused"))
    '[Errno 111] Connection refused'
    """
    text = str(exc)
    if text:
        return text
    if isinstance(exc, TimeoutError):
        return "operation timed out"
    return type(exc).__name__
