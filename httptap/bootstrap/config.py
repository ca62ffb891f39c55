"""Tap configuration and CLI argument parsing."""

import argparse
import ipaddress
import os
from dataclasses import dataclass
from typing import Optional, Union

from httptap.bootstrap.logging_setup import DISABLED_LEVEL, LOG_LEVELS, resolve_level
from httptap.domain.destinations import (
    DESTINATION_STDERR,
    DESTINATION_STDOUT,
    Destination,
    parse_destination,
    parse_optional_destination,
)

MAX_PORT = 65535
SHUTDOWN_GRACE_SECONDS = 5


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value is not None else default


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    return value if value is not None else default


DEFAULT_PORT = _env_int("HTTP_TAP_PORT", 8080)
DEFAULT_INTERFACE = _env_str("HTTP_TAP_INTERFACE", "127.0.0.1")
DEFAULT_BODY = _env_str("HTTP_TAP_BODY", DESTINATION_STDOUT)
DEFAULT_BODY_DELIMITER = _env_str("HTTP_TAP_BODY_DELIMITER", "\n")
DEFAULT_HEADERS = _env_str("HTTP_TAP_HEADERS", "")
DEFAULT_LOG = _env_str("HTTP_TAP_LOG", DESTINATION_STDERR)
DEFAULT_VERBOSITY = _env_str("HTTP_TAP_VERBOSITY", "")
DEFAULT_LOG_FORMAT = _env_str("HTTP_TAP_LOG_FORMAT", "json")
DEFAULT_SOCKET_TIMEOUT = _env_int("HTTP_TAP_SOCKET_TIMEOUT", 60)


class ConfigurationError(ValueError):
    """Raised when CLI values cannot form a valid configuration."""


@dataclass(frozen=True)
class TapConfig:
    """Immutable run configuration built once at startup."""

    interface: Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
    port: int
    body: Destination
    headers: Optional[Destination]
    log: Destination
    delimiter: bytes = b"\n"
    log_level: int = DISABLED_LEVEL
    log_format: str = "json"
    socket_timeout: int = DEFAULT_SOCKET_TIMEOUT
    shutdown_grace_seconds: int = SHUTDOWN_GRACE_SECONDS
    advisory: bool = True

    @property
    def use_json(self) -> bool:
        return self.log_format == "json"

    @property
    def bind_address(self) -> tuple[str, int]:
        return str(self.interface), self.port


def parse_cli_args(argv: list[str]) -> argparse.Namespace:
    """Return parsed CLI arguments for the tap configuration."""
    parser = argparse.ArgumentParser(
        description="Listen for HTTP requests and write their bodies to a sink"
    )
    parser.add_argument(
        "-p", "--port", type=int, default=DEFAULT_PORT, help="port to bind to"
    )
    parser.add_argument(
        "-i",
        "--interface",
        default=DEFAULT_INTERFACE,
        help="network interface (IP address) to bind to",
    )
    parser.add_argument(
        "-b",
        "--body",
        default=DEFAULT_BODY,
        help="where to write the request body: STDOUT, STDERR or a file path",
    )
    parser.add_argument(
        "--bdelim",
        default=DEFAULT_BODY_DELIMITER,
        help="what to write after each request body",
    )
    parser.add_argument(
        "-H",
        "--headers",
        default=DEFAULT_HEADERS,
        help="where to write the raw request headers: STDOUT, STDERR or a file path",
    )
    parser.add_argument(
        "-l",
        "--log",
        default=DEFAULT_LOG,
        help=(
            "where to write logs: STDOUT, STDERR or a file path; logs are "
            "discarded when they would share a console stream with output"
        ),
    )
    parser.add_argument(
        "--verbosity",
        default=DEFAULT_VERBOSITY,
        choices=["", *LOG_LEVELS],
        type=str.lower,
        help="logging verbosity: error, warn, info or debug (default: disabled)",
    )
    parser.add_argument(
        "--log-format",
        default=DEFAULT_LOG_FORMAT,
        choices=["json", "text"],
        type=str.lower,
    )
    parser.add_argument(
        "--socket-timeout",
        type=int,
        default=DEFAULT_SOCKET_TIMEOUT,
        help="Socket timeout in seconds while reading a request",
    )
    parser.add_argument(
        "--advisory",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Print a one-time notice when logs are discarded",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> TapConfig:
    """Validate parsed arguments and freeze them into a TapConfig."""
    try:
        interface = ipaddress.ip_address(args.interface)
    except ValueError as exc:
        raise ConfigurationError(
            f"could not parse interface flag as IP interface={args.interface}"
        ) from exc

    if not 0 <= args.port <= MAX_PORT:
        raise ConfigurationError(f"port flag invalid (must be within 0-{MAX_PORT})")

    try:
        body = parse_destination(args.body)
        log = parse_destination(args.log)
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc

    return TapConfig(
        interface=interface,
        port=args.port,
        body=body,
        headers=parse_optional_destination(args.headers),
        log=log,
        delimiter=os.fsencode(args.bdelim),
        log_level=resolve_level(args.verbosity),
        log_format=args.log_format,
        socket_timeout=args.socket_timeout,
        advisory=args.advisory,
    )
