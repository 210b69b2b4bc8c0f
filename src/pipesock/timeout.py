"""Timeout resolution.

A single duration governs both the connect (or bind) step and every read
that follows it. It comes from, highest precedence first: the per-call flag,
the process configuration, then ``DEFAULT_TIMEOUT``.
"""

from __future__ import annotations

import re
from datetime import timedelta
from typing import TypeAlias

from pipesock.errors import TimeoutSettingError

__all__ = [
    "DEFAULT_TIMEOUT",
    "Duration",
    "parse_duration",
    "resolve_timeout",
    "to_seconds",
]

DEFAULT_TIMEOUT: float = 10.0

Duration: TypeAlias = int | float | timedelta | str

_UNITS: dict[str, float] = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "sec": 1.0,
    "m": 60.0,
    "min": 60.0,
    "h": 3600.0,
    "hr": 3600.0,
    "d": 86400.0,
    "day": 86400.0,
    "wk": 604800.0,
}

_DURATION = re.compile(r"^\s*(?P<value>\d+(?:\.\d+)?)\s*(?P<unit>[a-zµ]+)?\s*$")


def parse_duration(text: str) -> float:
    """Parse a duration literal into seconds.

    A bare number is seconds.

    Examples
    --------
    >>> parse_duration("2sec")
    2.0
    >>> parse_duration("500ms")
    0.5
    >>> parse_duration("1.5")
    1.5
    """
    match = _DURATION.match(text)
    if match is None:
        raise ValueError(f"Invalid duration: {text!r}")
    unit = match.group("unit") or "s"
    try:
        scale = _UNITS[unit]
    except KeyError:
        raise ValueError(f"Unknown duration unit {unit!r} in {text!r}") from None
    return float(match.group("value")) * scale


def to_seconds(value: Duration) -> float:
    """Normalise any accepted duration form to float seconds."""
    match value:
        case bool():
            raise TypeError("A boolean is not a duration")
        case timedelta():
            return value.total_seconds()
        case int() | float():
            return float(value)
        case str():
            return parse_duration(value)
        case _:
            raise TypeError(f"Unsupported duration type: {type(value).__name__}")


def resolve_timeout(
    flag: Duration | None = None,
    configured: Duration | None = None,
) -> float:
    """Merge the per-call flag, the configured default and the fallback.

    Parameters
    ----------
    flag : Duration | None
        Explicit per-call timeout.
    configured : Duration | None
        Process-wide default from configuration.

    Returns
    -------
    float
        Effective timeout in seconds.

    Raises
    ------
    TimeoutSettingError
        If the winning value is malformed, zero or negative. Such a value
        cannot be applied to a socket.

    Examples
    --------
    >>> resolve_timeout(2, 5)
    2.0
    >>> resolve_timeout(None, 5)
    5.0
    >>> resolve_timeout()
    10.0
    """
    if flag is not None:
        chosen: Duration = flag
    elif configured is not None:
        chosen = configured
    else:
        chosen = DEFAULT_TIMEOUT

    try:
        seconds = to_seconds(chosen)
    except (TypeError, ValueError) as exc:
        raise TimeoutSettingError(help=str(exc), argument="timeout") from exc

    if seconds <= 0:
        raise TimeoutSettingError(
            help=f"Timeout must be a positive duration, got {seconds}s",
            argument="timeout",
        )
    return seconds
