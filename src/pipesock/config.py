"""TOML-based configuration for pipesock.

Provides ``load_config`` / ``discover_config`` for loading ``pipesock.toml``
into a frozen ``PluginConfig`` snapshot. The snapshot is passed explicitly to
the client and server; nothing reads configuration from global state.
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pipesock.timeout import Duration, to_seconds

__all__ = [
    "CONFIG_FILENAME",
    "ClientConfig",
    "PluginConfig",
    "ServerConfig",
    "discover_config",
    "load_config",
]

CONFIG_FILENAME = "pipesock.toml"


@dataclass(frozen=True)
class ClientConfig:
    """Client-side settings.

    Parameters
    ----------
    timeout : Duration | None
        Process-wide default timeout. ``None`` defers to the built-in
        default of 10 seconds.

    Examples
    --------
    >>> ClientConfig(timeout=5.0)
    ClientConfig(timeout=5.0)
    """

    timeout: Duration | None = None


@dataclass(frozen=True)
class ServerConfig:
    """Accept-loop and connection-handler settings.

    Parameters
    ----------
    read_timeout : float
        Seconds a handler waits for the request before giving up.
    poll_interval : float
        Seconds the accept loop sleeps when no connection is pending.
    buffer_size : int
        Maximum request size read from a connection.

    Examples
    --------
    >>> ServerConfig()
    ServerConfig(read_timeout=10.0, poll_interval=0.05, buffer_size=4096)
    """

    read_timeout: float = 10.0
    poll_interval: float = 0.05
    buffer_size: int = 4096

    def __post_init__(self) -> None:
        if self.read_timeout <= 0:
            raise ValueError(f"server.read_timeout must be positive, got {self.read_timeout}")
        if self.poll_interval <= 0:
            raise ValueError(f"server.poll_interval must be positive, got {self.poll_interval}")
        if self.buffer_size <= 0:
            raise ValueError(f"server.buffer_size must be positive, got {self.buffer_size}")


@dataclass(frozen=True)
class PluginConfig:
    """Top-level configuration snapshot.

    Parameters
    ----------
    client : ClientConfig
        Client defaults.
    server : ServerConfig
        Server defaults.

    Examples
    --------
    >>> PluginConfig().client.timeout is None
    True
    """

    client: ClientConfig = field(default_factory=ClientConfig)
    server: ServerConfig = field(default_factory=ServerConfig)


def _seconds(raw: dict[str, Any], key: str, section: str, default: float) -> float:
    value = raw.get(key)
    if value is None:
        return default
    try:
        return to_seconds(value)
    except (TypeError, ValueError) as exc:
        msg = f"Invalid value for {section}.{key}: {exc}"
        raise ValueError(msg) from exc


def _parse_client(raw: dict[str, Any]) -> ClientConfig:
    if "timeout" not in raw:
        return ClientConfig()
    return ClientConfig(timeout=_seconds(raw, "timeout", "client", 0.0))


def _parse_server(raw: dict[str, Any]) -> ServerConfig:
    defaults = ServerConfig()
    buffer_size = raw.get("buffer_size", defaults.buffer_size)
    if isinstance(buffer_size, bool) or not isinstance(buffer_size, int):
        msg = f"Invalid value for server.buffer_size: expected an integer, got {buffer_size!r}"
        raise ValueError(msg)
    return ServerConfig(
        read_timeout=_seconds(raw, "read_timeout", "server", defaults.read_timeout),
        poll_interval=_seconds(raw, "poll_interval", "server", defaults.poll_interval),
        buffer_size=buffer_size,
    )


def discover_config(start: Path | None = None) -> Path | None:
    """Walk up from *start* (default: cwd) looking for ``pipesock.toml``.

    Parameters
    ----------
    start : Path | None
        Directory to start searching from.

    Returns
    -------
    Path | None
        Path to the discovered config file, or ``None`` if not found.
    """
    current = (start or Path.cwd()).resolve()
    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            return None
        current = parent


def load_config(path: Path | None = None) -> PluginConfig:
    """Load a ``PluginConfig`` from a TOML file.

    If *path* is ``None``, auto-discovers ``pipesock.toml`` by walking up from
    the current working directory. Returns the default config if no file is
    found.

    Parameters
    ----------
    path : Path | None
        Explicit path to a TOML config file.

    Returns
    -------
    PluginConfig

    Raises
    ------
    FileNotFoundError
        If an explicit *path* is given but does not exist.
    ValueError
        If a known key holds a value of the wrong shape.

    Examples
    --------
    >>> config = load_config(Path("pipesock.toml"))
    >>> config.server.poll_interval
    0.05
    """
    if path is None:
        discovered = discover_config()
        if discovered is None:
            return PluginConfig()
        path = discovered

    if not path.exists():
        msg = f"Config file not found: {path}"
        raise FileNotFoundError(msg)

    with path.open("rb") as f:
        raw = tomllib.load(f)

    return PluginConfig(
        client=_parse_client(raw.get("client", {})),
        server=_parse_server(raw.get("server", {})),
    )
