from __future__ import annotations

import pytest

from pipesock.errors import (
    CallbackError,
    ConnectError,
    InvalidArgument,
    NoAddressError,
    ProtocolError,
    ReadError,
    ReceiveError,
    ResolutionError,
    SendError,
    SocketError,
    WriteError,
    describe_cause,
)


def test_default_title_and_str() -> None:
    err = ConnectError(help="[Errno 111] Connection refused")
    assert err.title == "Connection timed out or failed"
    assert str(err) == "Connection timed out or failed: [Errno 111] Connection refused"
    assert err.label == "here"
    assert err.argument is None


def test_str_without_help() -> None:
    assert str(NoAddressError()) == "No IP addresses found for host"


def test_custom_title() -> None:
    err = InvalidArgument("Invalid port number", help="too big", argument="port")
    assert err.title == "Invalid port number"
    assert err.args == ("Invalid port number: too big",)


def test_to_dict() -> None:
    err = ResolutionError(help="nope", argument="host", label="for this host")
    assert err.to_dict() == {
        "kind": "ResolutionError",
        "title": "Failed to resolve host",
        "help": "nope",
        "argument": "host",
        "label": "for this host",
    }


@pytest.mark.parametrize(
    ("child", "parent"),
    [
        (NoAddressError, ResolutionError),
        (SendError, WriteError),
        (ReceiveError, ReadError),
        (ProtocolError, SocketError),
        (CallbackError, SocketError),
    ],
)
def test_hierarchy(child: type[SocketError], parent: type[SocketError]) -> None:
    assert issubclass(child, parent)


def test_describe_cause() -> None:
    assert describe_cause(TimeoutError()) == "operation timed out"
    assert describe_cause(TimeoutError("timed out")) == "timed out"
    assert describe_cause(ConnectionResetError()) == "ConnectionResetError"
    assert describe_cause(OSError(111, "Connection refused")) == "[Errno 111] Connection refused"
