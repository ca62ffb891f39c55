"""Integration tests for graceful shutdown behavior."""

# pylint: disable=redefined-outer-name

import signal
import socket
import time
from pathlib import Path

import pytest
import requests

from tests.utils.http import (
    read_http_response,
    send_signal_to_process,
    wait_for_file_size,
)

pytestmark = pytest.mark.integration


@pytest.fixture
def tap_info(tmp_path: Path, tap_factory):
    """Start a tap writing bodies to a file."""
    body_file = tmp_path / "bodies.txt"
    return tap_factory(["--body", str(body_file)], body_file=body_file)


def _open_partial_upload(host: str, port: int) -> socket.socket:
    sock = socket.create_connection((host, port), timeout=10.0)
    sock.sendall(
        b"POST /slow HTTP/1.1\r\n"
        b"Host: localhost\r\n"
        b"Content-Length: 10\r\n"
        b"\r\n"
        b"01234"
    )
    return sock


@pytest.mark.parametrize("sig", [signal.SIGINT, signal.SIGTERM])
def test_idle_tap_exits_cleanly_on_signal(tap_info, sig):
    """An interrupt with nothing in flight exits with status zero."""
    process = tap_info["process"]
    send_signal_to_process(process.pid, sig)
    process.wait(timeout=6.0)
    assert process.returncode == 0


def test_in_flight_request_completes_before_exit(tap_info):
    """A request started before the interrupt still reaches the sink."""
    process = tap_info["process"]
    sock = _open_partial_upload(tap_info["host"], tap_info["port"])
    try:
        assert wait_for_file_size(tap_info["body_file"], 5)
        send_signal_to_process(process.pid, signal.SIGINT)
        time.sleep(0.3)
        assert process.poll() is None
        sock.sendall(b"56789")
        response = read_http_response(sock)
        assert response.status_line == "HTTP/1.1 200 OK"
        assert response.headers.get("connection") == "close"
    finally:
        sock.close()
    process.wait(timeout=6.0)
    assert process.returncode == 0
    assert tap_info["body_file"].read_bytes() == b"0123456789\n"


def test_stalled_request_fails_shutdown(tap_info):
    """A request stalled past the deadline makes the tap exit non-zero."""
    process = tap_info["process"]
    sock = _open_partial_upload(tap_info["host"], tap_info["port"])
    try:
        assert wait_for_file_size(tap_info["body_file"], 5)
        start = time.monotonic()
        send_signal_to_process(process.pid, signal.SIGINT)
        process.wait(timeout=10.0)
        elapsed = time.monotonic() - start
    finally:
        sock.close()
    assert process.returncode != 0
    assert 4.5 < elapsed < 8.0


def test_idle_keep_alive_connection_does_not_block_shutdown(tap_info):
    """Idle persistent connections are closed instead of drained."""
    process = tap_info["process"]
    with requests.Session() as session:
        response = session.post(
            f"{tap_info['base_url']}/keep", data=b"alive", timeout=5
        )
        assert response.status_code == 200
        start = time.monotonic()
        send_signal_to_process(process.pid, signal.SIGINT)
        process.wait(timeout=6.0)
        elapsed = time.monotonic() - start
    assert process.returncode == 0
    assert elapsed < 3.0


def test_no_new_connections_after_shutdown(tap_info):
    """The listener is closed once the tap has stopped."""
    process = tap_info["process"]
    send_signal_to_process(process.pid, signal.SIGINT)
    process.wait(timeout=6.0)
    with pytest.raises(OSError):
        socket.create_connection((tap_info["host"], tap_info["port"]), timeout=1.0)
