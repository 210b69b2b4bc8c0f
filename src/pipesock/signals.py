"""Cooperative cancellation source polled by the accept loop."""

from __future__ import annotations

import asyncio
import logging
import signal
import threading

logger = logging.getLogger("pipesock.signals")

DEFAULT_SIGNALS: tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM)


class Signals:
    """Thread-safe interrupt flag.

    The accept loop calls ``interrupted()`` once per iteration; anything
    (a signal handler, another task, a callback thread) may call
    ``trigger()``.

    Examples
    --------
    >>> signals = Signals()
    >>> signals.interrupted()
    False
    >>> signals.trigger()
    >>> signals.interrupted()
    True
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._installed: list[tuple[asyncio.AbstractEventLoop, signal.Signals]] = []

    def interrupted(self) -> bool:
        return self._event.is_set()

    def trigger(self) -> None:
        self._event.set()

    def reset(self) -> None:
        self._event.clear()

    def install(
        self,
        sigs: tuple[signal.Signals, ...] = DEFAULT_SIGNALS,
    ) -> None:
        """Trigger on *sigs* delivered to the running event loop."""
        loop = asyncio.get_running_loop()

        def handler(sig: signal.Signals) -> None:
            logger.info("Received %s", sig.name)
            self.trigger()

        for sig in sigs:
            loop.add_signal_handler(sig, handler, sig)
            self._installed.append((loop, sig))

    def uninstall(self) -> None:
        for loop, sig in self._installed:
            loop.remove_signal_handler(sig)
        self._installed.clear()
