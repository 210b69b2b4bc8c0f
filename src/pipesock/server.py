"""Accept loop server invoking a callback per connection.

States:
    BINDING       → creating the listening socket
    LISTENING     → bound, loop not yet entered
    ACCEPTING     → polling the listener for a pending connection
    IDLE          → nothing pending, sleeping one poll interval
    SHUTTING_DOWN → cancellation, single-shot completion or accept failure
    STOPPED       → listener released

Each accepted connection runs a ``ConnectionHandler`` in its own task: one
read, one callback invocation, one write, then close. Handler failures are
logged and never reach the accept loop.
"""

from __future__ import annotations

import asyncio
import enum
import inspect
import logging
import socket
import threading
from collections.abc import Awaitable, Callable
from contextlib import suppress
from typing import Any, TypeAlias

from pipesock.address import Endpoint
from pipesock.config import PluginConfig, ServerConfig
from pipesock.errors import (
    AcceptError,
    BindError,
    CallbackError,
    ReadError,
    SocketError,
    WriteError,
    describe_cause,
)
from pipesock.payload import coerce_reply
from pipesock.signals import Signals

__all__ = [
    "Callback",
    "ConnectionHandler",
    "Server",
    "ServerState",
    "listen",
]

logger = logging.getLogger("pipesock.server")

Callback: TypeAlias = Callable[[bytes], str | bytes | Awaitable[str | bytes]]


class ServerState(enum.Enum):
    BINDING = enum.auto()
    LISTENING = enum.auto()
    ACCEPTING = enum.auto()
    IDLE = enum.auto()
    SHUTTING_DOWN = enum.auto()
    STOPPED = enum.auto()


class ConnectionHandler:
    """Serves one request per connection with a caller-supplied callback.

    Plain callables run on a thread of their own so a slow callback only
    holds up its own connection; coroutine functions are awaited directly.

    Parameters
    ----------
    callback : Callback
        Receives the request bytes, returns ``str`` or ``bytes``.
    read_timeout : float
        Seconds to wait for the request.
    buffer_size : int
        Maximum number of request bytes read.
    """

    def __init__(
        self,
        callback: Callback,
        *,
        read_timeout: float = 10.0,
        buffer_size: int = 4096,
    ) -> None:
        self._callback = callback
        self._read_timeout = read_timeout
        self._buffer_size = buffer_size

    async def handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        """Serve the connection and close it, logging any failure."""
        peer = writer.get_extra_info("peername")
        try:
            await self.serve(reader, writer)
        except SocketError as exc:
            logger.error("Error in connection handler for %s: %s", peer, exc)
        except Exception:
            logger.exception("Unexpected error in connection handler for %s", peer)
        finally:
            writer.close()
            with suppress(OSError):
                await writer.wait_closed()

    async def serve(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        """Read the request, run the callback and write the response.

        Raises
        ------
        ReadError
            The read failed or timed out.
        CallbackError
            The callback raised.
        ProtocolError
            The callback returned something other than ``str`` or ``bytes``.
        WriteError
            The response could not be written.
        """
        try:
            request = await asyncio.wait_for(
                reader.read(self._buffer_size), self._read_timeout
            )
        except OSError as exc:
            raise ReadError(
                help=(
                    f"{describe_cause(exc)}. This can happen if the client "
                    "disconnects or the read times out."
                )
            ) from exc

        response = coerce_reply(await self.invoke(request))

        try:
            writer.write(response)
            await writer.drain()
        except OSError as exc:
            raise WriteError(help=describe_cause(exc)) from exc

    async def invoke(self, request: bytes) -> Any:
        try:
            if inspect.iscoroutinefunction(self._callback):
                return await self._callback(request)
            result = await self._call_in_thread(request)
            if inspect.isawaitable(result):
                result = await result
            return result
        except Exception as exc:
            raise CallbackError(help=describe_cause(exc), argument="callback") from exc

    async def _call_in_thread(self, request: bytes) -> Any:
        """Run a plain callback on a dedicated thread.

        One thread per invocation, never the loop's bounded default executor.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Any] = loop.create_future()

        def settle(outcome: Any, failed: bool) -> None:
            if future.done():
                return
            if failed:
                future.set_exception(outcome)
            else:
                future.set_result(outcome)

        def target() -> None:
            try:
                result = self._callback(request)
            except BaseException as exc:
                loop.call_soon_threadsafe(settle, exc, True)
            else:
                loop.call_soon_threadsafe(settle, result, False)

        threading.Thread(target=target, name="pipesock-callback", daemon=True).start()
        return await future


class Server:
    """Non-blocking accept loop with cooperative cancellation.

    The listener never blocks: when no connection is pending the loop sleeps
    ``poll_interval`` seconds, then checks ``signals`` again. Cancellation
    only stops new accepts; dispatched handlers keep running.

    Parameters
    ----------
    host : str
        Local address to bind.
    port : int
        Local port, 0 for an OS-assigned one.
    callback : Callback
        Invoked once per connection with the request bytes.
    single_shot : bool
        Stop right after dispatching the first connection.
    signals : Signals | None
        Cancellation source polled each iteration.
    config : ServerConfig | None
        Read timeout, poll interval and request buffer size.

    Examples
    --------
    >>> server = Server("0.0.0.0", 8080, lambda req: b"Hello, you sent: " + req)
    >>> await server.run()
    """

    def __init__(
        self,
        host: str,
        port: int,
        callback: Callback,
        *,
        single_shot: bool = False,
        signals: Signals | None = None,
        config: ServerConfig | None = None,
    ) -> None:
        self._endpoint = Endpoint(host, port)
        self._config = config or ServerConfig()
        self._handler = ConnectionHandler(
            callback,
            read_timeout=self._config.read_timeout,
            buffer_size=self._config.buffer_size,
        )
        self._single_shot = single_shot
        self._signals = signals or Signals()
        self._sock: socket.socket | None = None
        self._address: tuple[Any, ...] | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._state = ServerState.BINDING

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def signals(self) -> Signals:
        return self._signals

    @property
    def address(self) -> tuple[Any, ...] | None:
        """Bound local address, available after ``bind()``."""
        return self._address

    @property
    def port(self) -> int | None:
        return self._address[1] if self._address else None

    @property
    def active_handlers(self) -> int:
        return len(self._tasks)

    def bind(self) -> tuple[Any, ...]:
        """Create the non-blocking listening socket.

        Called by ``run()`` when needed; call it directly to learn the port
        before serving.

        Raises
        ------
        BindError
            If the address cannot be bound.
        """
        return self._listener().getsockname()

    def _listener(self) -> socket.socket:
        if self._sock is not None:
            return self._sock

        self._state = ServerState.BINDING
        host, port = self._endpoint.host, self._endpoint.port
        family = socket.AF_INET6 if ":" in host else socket.AF_INET
        try:
            sock = socket.create_server((host, port), family=family)
        except OSError as exc:
            self._state = ServerState.STOPPED
            raise BindError(help=describe_cause(exc)) from exc

        try:
            sock.setblocking(False)
        except OSError as exc:
            sock.close()
            self._state = ServerState.STOPPED
            raise BindError(
                "Failed to set listener to non-blocking", help=describe_cause(exc)
            ) from exc

        self._sock = sock
        self._address = sock.getsockname()
        self._state = ServerState.LISTENING
        return sock

    def stop(self) -> None:
        """Ask the loop to stop before its next accept."""
        self._signals.trigger()

    async def run(self) -> None:
        """Accept connections until cancelled, single-shot or a fatal error.

        Raises
        ------
        BindError
            If binding fails.
        AcceptError
            If ``accept`` fails with anything other than "would block".
        """
        sock = self._listener()

        logger.info("Listening on %s... (Press Ctrl+C to stop)", self._endpoint)
        failure: AcceptError | None = None
        try:
            while True:
                if self._signals.interrupted():
                    logger.info("Server shutting down.")
                    break

                self._state = ServerState.ACCEPTING
                try:
                    conn, peer = sock.accept()
                except BlockingIOError:
                    self._state = ServerState.IDLE
                    await asyncio.sleep(self._config.poll_interval)
                    continue
                except OSError as exc:
                    logger.error("Error accepting connection: %s", exc)
                    failure = AcceptError(help=describe_cause(exc))
                    break

                self._dispatch(conn, peer)
                await asyncio.sleep(0)
                if self._single_shot:
                    logger.info("Single connection dispatched, server shutting down.")
                    break
        finally:
            self._state = ServerState.SHUTTING_DOWN
            sock.close()
            self._sock = None
            self._state = ServerState.STOPPED

        if failure is not None:
            raise failure

    async def join(self) -> None:
        """Wait for every dispatched handler to finish."""
        while self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def _dispatch(self, conn: socket.socket, peer: Any) -> None:
        logger.debug("Accepted connection from %s", peer)
        task = asyncio.create_task(self._serve_connection(conn, peer))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _serve_connection(self, conn: socket.socket, peer: Any) -> None:
        try:
            conn.setblocking(False)
            reader, writer = await asyncio.open_connection(sock=conn)
        except OSError as exc:
            conn.close()
            logger.error("Error in connection handler for %s: %s", peer, exc)
            return
        await self._handler.handle(reader, writer)


async def listen(
    host: str,
    port: int,
    callback: Callback,
    *,
    single_shot: bool = False,
    signals: Signals | None = None,
    config: PluginConfig | None = None,
) -> None:
    """Serve *callback* on *host*:*port* until the loop terminates.

    Returns once the loop has stopped and every dispatched connection has
    been answered.

    Parameters
    ----------
    host : str
        Local address to bind.
    port : int
        Local port.
    callback : Callback
        Receives each request as bytes, returns ``str`` or ``bytes``.
    single_shot : bool
        Terminate after the first accepted connection.
    signals : Signals | None
        Cancellation source.
    config : PluginConfig | None
        Configuration snapshot.

    Examples
    --------
    >>> await listen("0.0.0.0", 8080, lambda req: "Hello, you sent: " + req.decode())
    """
    config = config or PluginConfig()
    server = Server(
        host,
        port,
        callback,
        single_shot=single_shot,
        signals=signals,
        config=config.server,
    )
    await server.run()
    await server.join()
