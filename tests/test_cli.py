from __future__ import annotations

import shutil
import socket
import subprocess
import threading
import time
from collections.abc import Iterator
from pathlib import Path

import pytest

from pipesock.cli import build_parser, echo_callback, exec_callback, main


@pytest.fixture
def threaded_echo() -> Iterator[int]:
    """Blocking echo server on a thread, for CLI runs that own the event loop."""
    listener = socket.create_server(("127.0.0.1", 0))
    listener.settimeout(5)

    def serve() -> None:
        try:
            conn, _ = listener.accept()
        except OSError:
            return
        with conn:
            conn.sendall(conn.recv(4096))

    thread = threading.Thread(target=serve, daemon=True)
    thread.start()
    yield listener.getsockname()[1]
    listener.close()
    thread.join(timeout=1)


def _free_port() -> int:
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class TestParser:
    def test_connect_arguments(self) -> None:
        args = build_parser().parse_args(["connect", "example.com", "80", "-t", "2sec", "-u"])
        assert args.command == "connect"
        assert args.host == "example.com"
        assert args.port == 80
        assert args.timeout == "2sec"
        assert args.udp is True

    def test_listen_arguments(self) -> None:
        args = build_parser().parse_args(["listen", "0.0.0.0", "8080", "--single", "-e", "cat"])
        assert args.command == "listen"
        assert args.single is True
        assert args.exec_command == "cat"

    def test_config_path(self) -> None:
        args = build_parser().parse_args(["listen", "::1", "0", "-c", "conf/pipesock.toml"])
        assert args.config == Path("conf/pipesock.toml")

    def test_defaults(self) -> None:
        args = build_parser().parse_args(["connect", "h", "1"])
        assert args.timeout is None
        assert args.udp is False
        assert args.data is None


class TestCallbacks:
    def test_echo_callback(self) -> None:
        assert echo_callback(b"hi") == b"Hello, you sent: hi"

    @pytest.mark.skipif(shutil.which("tr") is None, reason="needs tr")
    def test_exec_callback(self) -> None:
        assert exec_callback("tr a-z A-Z")(b"shout") == b"SHOUT"

    def test_exec_callback_failure(self) -> None:
        with pytest.raises(subprocess.CalledProcessError):
            exec_callback("exit 3")(b"")


class TestMain:
    def test_subcommand_required(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main([]) == 2
        assert "Subcommand required" in capsys.readouterr().err

    def test_invalid_port(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["connect", "127.0.0.1", "70000", "--data", "x"]) == 1
        err = capsys.readouterr().err
        assert "Invalid port number" in err
        assert "port" in err

    def test_invalid_timeout(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["connect", "127.0.0.1", "9", "-t", "0sec", "--data", "x"]) == 1
        assert "Failed to set timeout" in capsys.readouterr().err

    def test_missing_config(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["connect", "h", "1", "-c", str(tmp_path / "missing.toml")]) == 1
        assert "Failed to load configuration" in capsys.readouterr().err

    def test_connect_streams_reply(
        self, threaded_echo: int, capsysbinary: pytest.CaptureFixture[bytes]
    ) -> None:
        assert main(["connect", "127.0.0.1", str(threaded_echo), "--data", "ping", "-t", "2sec"]) == 0
        assert capsysbinary.readouterr().out == b"ping"

    def test_connect_refused(self, capsys: pytest.CaptureFixture[str]) -> None:
        port = _free_port()
        assert main(["connect", "127.0.0.1", str(port), "--data", "x", "-t", "1sec"]) == 1
        assert "Connection timed out or failed" in capsys.readouterr().err

    def test_listen_single_shot(self) -> None:
        port = _free_port()
        replies: list[bytes] = []

        def client() -> None:
            deadline = time.monotonic() + 5
            while time.monotonic() < deadline:
                try:
                    with socket.create_connection(("127.0.0.1", port), timeout=2) as conn:
                        conn.sendall(b"there")
                        chunks = []
                        while chunk := conn.recv(4096):
                            chunks.append(chunk)
                        replies.append(b"".join(chunks))
                        return
                except ConnectionRefusedError:
                    time.sleep(0.02)

        thread = threading.Thread(target=client)
        thread.start()
        assert main(["listen", "127.0.0.1", str(port), "--single"]) == 0
        thread.join(timeout=5)
        assert replies == [b"Hello, you sent: there"]
