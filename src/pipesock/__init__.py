__version__ = "0.1.0"

from pipesock.address import Endpoint, ResolvedAddress, resolve
from pipesock.client import ByteStream, ClientSession, Reply, Transport, connect
from pipesock.config import (
    ClientConfig,
    PluginConfig,
    ServerConfig,
    discover_config,
    load_config,
)
from pipesock.errors import (
    AcceptError,
    BindError,
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
    TimeoutSettingError,
    WriteError,
)
from pipesock.payload import coerce_payload, coerce_reply
from pipesock.server import Callback, ConnectionHandler, Server, ServerState, listen
from pipesock.signals import Signals
from pipesock.timeout import DEFAULT_TIMEOUT, parse_duration, resolve_timeout

__all__ = [
    # Client
    "ByteStream",
    "ClientSession",
    "Reply",
    "Transport",
    "connect",
    # Server
    "Callback",
    "ConnectionHandler",
    "Server",
    "ServerState",
    "Signals",
    "listen",
    # Addresses and timeouts
    "DEFAULT_TIMEOUT",
    "Endpoint",
    "ResolvedAddress",
    "parse_duration",
    "resolve",
    "resolve_timeout",
    # Payloads
    "coerce_payload",
    "coerce_reply",
    # Configuration
    "ClientConfig",
    "PluginConfig",
    "ServerConfig",
    "discover_config",
    "load_config",
    # Errors
    "AcceptError",
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
]
