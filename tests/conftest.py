"""Shared pytest fixtures for integration and unit tests."""

from __future__ import annotations

import signal
import subprocess
import sys
from pathlib import Path
from typing import Generator, Optional, TypedDict

import pytest

from tests.utils.http import reserve_port, send_signal_to_process, wait_for_port

PROJECT_ROOT = Path(__file__).resolve().parent.parent
TAP_ENTRYPOINT = PROJECT_ROOT / "main.py"
HOST = "127.0.0.1"


class TapProcessInfo(TypedDict):
    """Metadata describing a running tap fixture instance."""

    base_url: str
    host: str
    port: int
    process: subprocess.Popen
    body_file: Optional[Path]
    log_file: Optional[Path]


def launch_tap(port: int, extra_args: list) -> subprocess.Popen:
    """Start main.py on ``port`` with output captured through pipes."""
    args = [
        sys.executable,
        str(TAP_ENTRYPOINT),
        "--interface",
        HOST,
        "--port",
        str(port),
        *extra_args,
    ]
    return subprocess.Popen(
        args,
        cwd=PROJECT_ROOT,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
    )


def stop_tap(process: subprocess.Popen, timeout: float = 8.0) -> tuple[bytes, bytes]:
    """Interrupt the tap and collect everything it wrote to the console."""
    if process.poll() is None:
        send_signal_to_process(process.pid, signal.SIGINT)
    try:
        return process.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        process.kill()
        return process.communicate()


def _start(extra_args: list[str], body_file=None, log_file=None):
    port = reserve_port(HOST)
    process = launch_tap(port, extra_args)
    try:
        wait_for_port(HOST, port)
    except Exception:
        process.kill()
        stdout, stderr = process.communicate(timeout=5)
        print(f"\nTap stdout:\n{stdout!r}")
        print(f"\nTap stderr:\n{stderr!r}")
        raise
    info: TapProcessInfo = {
        "base_url": f"http://{HOST}:{port}",
        "host": HOST,
        "port": port,
        "process": process,
        "body_file": body_file,
        "log_file": log_file,
    }
    return info


@pytest.fixture(name="tap_factory")
def _tap_factory() -> Generator:
    """Launch taps with arbitrary flags; every tap is stopped on teardown."""
    started: list[subprocess.Popen] = []

    def factory(extra_args: list[str], body_file=None, log_file=None):
        info = _start(extra_args, body_file, log_file)
        started.append(info["process"])
        return info

    yield factory

    for process in started:
        if process.poll() is None:
            process.kill()
            process.communicate()


@pytest.fixture(name="file_tap")
def _file_tap(tmp_path: Path, tap_factory) -> TapProcessInfo:
    """A tap writing bodies and info-level JSON logs into files."""
    body_file = tmp_path / "bodies.bin"
    log_file = tmp_path / "tap.log"
    return tap_factory(
        [
            "--body",
            str(body_file),
            "--log",
            str(log_file),
            "--verbosity",
            "info",
        ],
        body_file=body_file,
        log_file=log_file,
    )
