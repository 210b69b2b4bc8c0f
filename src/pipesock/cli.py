"""Command-line entry point: ``pipesock connect`` and ``pipesock listen``."""

from __future__ import annotations

import argparse
import asyncio
import logging
import subprocess
import sys
import tomllib
from pathlib import Path
from typing import BinaryIO

from pipesock import __version__
from pipesock.client import connect
from pipesock.config import PluginConfig, load_config
from pipesock.errors import SocketError
from pipesock.server import Callback, Server
from pipesock.signals import Signals

logger = logging.getLogger("pipesock.cli")

EPILOG = "Run `pipesock connect --help` or `pipesock listen --help` for more information."


def echo_callback(request: bytes) -> bytes:
    return b"Hello, you sent: " + request


def exec_callback(command: str) -> Callback:
    """Callback piping each request through a shell command.

    The command's stdout is the response; a non-zero exit status fails the
    connection.
    """

    def run(request: bytes) -> bytes:
        completed = subprocess.run(
            command,
            shell=True,
            input=request,
            capture_output=True,
            check=True,
        )
        return completed.stdout

    return run


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pipesock",
        description="Low-level socket communication.",
        epilog=EPILOG,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    sub = parser.add_subparsers(dest="command", metavar="{connect,listen}")

    conn = sub.add_parser(
        "connect",
        help="Send data to a remote host and stream the reply.",
        description=(
            "Connect to a remote host, send data from stdin, and stream the reply to stdout."
        ),
        epilog=(
            "examples:\n"
            "  printf 'GET / HTTP/1.1\\r\\nHost: example.com\\r\\n\\r\\n' | pipesock connect example.com 80\n"
            "  printf 'il\\r\\n' | pipesock connect whois.iana.org 43"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    conn.add_argument("host", help="The hostname or IP address to connect to.")
    conn.add_argument("port", type=int, help="The port number to connect to.")
    conn.add_argument(
        "-t", "--timeout",
        help="Timeout for network operations, e.g. 500ms or 2sec. Defaults to 10 seconds.",
    )
    conn.add_argument("-u", "--udp", action="store_true", help="Use UDP protocol instead of TCP.")
    conn.add_argument("-d", "--data", help="Send this text instead of reading stdin.")
    conn.add_argument("-c", "--config", type=Path, help="Path to a pipesock.toml file.")

    lst = sub.add_parser(
        "listen",
        help="Listen for connections and answer each request.",
        description="Listen for incoming connections and run a callback for each request.",
        epilog=(
            "examples:\n"
            "  pipesock listen 0.0.0.0 8080\n"
            "  pipesock listen 127.0.0.1 8080 --exec 'tr a-z A-Z' --single"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    lst.add_argument("host", help="The hostname or IP address to listen on.")
    lst.add_argument("port", type=int, help="The port to listen on.")
    lst.add_argument(
        "-s", "--single", action="store_true",
        help="Terminate the server after handling a single connection.",
    )
    lst.add_argument(
        "-e", "--exec", dest="exec_command", metavar="COMMAND",
        help="Shell command receiving each request on stdin; its stdout is the response.",
    )
    lst.add_argument("-c", "--config", type=Path, help="Path to a pipesock.toml file.")
    return parser


def _read_stdin() -> bytes:
    stdin = sys.stdin
    if stdin is None or stdin.isatty():
        return b""
    return stdin.buffer.read()


def _report(exc: SocketError) -> None:
    print(f"error: {exc.title}", file=sys.stderr)
    if exc.argument:
        print(f"  {exc.label}: {exc.argument}", file=sys.stderr)
    if exc.help:
        print(f"  help: {exc.help}", file=sys.stderr)


async def _connect(args: argparse.Namespace, config: PluginConfig, out: BinaryIO) -> None:
    data = args.data if args.data is not None else _read_stdin()
    reply = await connect(
        args.host,
        args.port,
        data,
        udp=args.udp,
        timeout=args.timeout,
        config=config,
    )
    if isinstance(reply, bytes):
        out.write(reply)
        out.flush()
        return
    async with reply:
        async for chunk in reply:
            out.write(chunk)
            out.flush()


async def _listen(args: argparse.Namespace, config: PluginConfig) -> None:
    callback = exec_callback(args.exec_command) if args.exec_command else echo_callback
    signals = Signals()
    server = Server(
        args.host,
        args.port,
        callback,
        single_shot=args.single,
        signals=signals,
        config=config.server,
    )
    signals.install()
    try:
        await server.run()
    finally:
        signals.uninstall()
    await server.join()


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.command is None:
        print("error: Subcommand required", file=sys.stderr)
        print("  help: You must run a subcommand like 'connect' or 'listen'", file=sys.stderr)
        return 2

    try:
        config = load_config(args.config)
    except (OSError, ValueError, tomllib.TOMLDecodeError) as exc:
        print(f"error: Failed to load configuration\n  help: {exc}", file=sys.stderr)
        return 1

    try:
        match args.command:
            case "connect":
                asyncio.run(_connect(args, config, sys.stdout.buffer))
            case "listen":
                asyncio.run(_listen(args, config))
    except SocketError as exc:
        _report(exc)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    return 0
