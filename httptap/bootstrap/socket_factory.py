"""Listening socket creation."""

import ipaddress
import logging
import socket

from httptap.bootstrap.config import TapConfig
from httptap.domain.correlation_id import CorrelationLoggerAdapter

SOCKET_LOGGER = CorrelationLoggerAdapter(logging.getLogger("http_tap.socket"), {})

ACCEPT_POLL_SECONDS = 0.5


def create_server_socket(config: TapConfig) -> socket.socket:
    """Bind the listening socket; OSError propagates on bind failure."""
    family = (
        socket.AF_INET6
        if isinstance(config.interface, ipaddress.IPv6Address)
        else socket.AF_INET
    )
    server_socket = socket.create_server(config.bind_address, family=family)
    server_socket.settimeout(ACCEPT_POLL_SECONDS)
    SOCKET_LOGGER.debug(
        "Listening socket bound",
        extra={
            "event": "socket_bound",
            "interface": str(config.interface),
            "port": server_socket.getsockname()[1],
        },
    )
    return server_socket
