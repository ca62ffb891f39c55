"""Worker thread logic for handling individual client connections."""

import logging
import socket
import threading

from httptap.domain.correlation_id import CorrelationLoggerAdapter, request_scope
from httptap.domain.http_types import (
    TapRequest,
    bad_request_response,
    ok_response,
    should_close,
)
from httptap.pipeline.dispatcher import dispatch_request
from httptap.pipeline.io import (
    build_request,
    receive_head,
    send_continue,
    send_response,
)
from httptap.transport.context import WorkerContext

WORKER_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("http_tap.transport.worker"), {}
)


def _wants_close(request: TapRequest) -> bool:
    if should_close(request.headers):
        return True
    request_line = request.raw_head.split(b"\r\n", 1)[0]
    if request_line.endswith(b"HTTP/1.0"):
        return request.headers.get("connection", "").lower() != "keep-alive"
    return False


def _reject_malformed(
    client_socket: socket.socket, client_addr_str: str, error: ValueError
) -> None:
    WORKER_LOGGER.warning(
        "Malformed request received",
        extra={
            "event": "malformed_request",
            "client": client_addr_str,
            "error": str(error),
        },
    )
    send_response(client_socket, bad_request_response())


def _serve_one(
    client_socket: socket.socket,
    buffer: bytes,
    context: WorkerContext,
    client_addr_str: str,
) -> tuple[bool, bytes]:
    """Handle a single request; return (close connection, unconsumed bytes)."""
    lifecycle = context.lifecycle
    try:
        head, buffer = receive_head(
            client_socket,
            buffer,
            should_abandon=lifecycle.is_draining if lifecycle is not None else None,
            idle_timeout=context.socket_timeout,
        )
        if head is None:
            WORKER_LOGGER.debug(
                "Connection idle or closed by client",
                extra={"event": "client_disconnected", "client": client_addr_str},
            )
            return True, b""
        client_socket.settimeout(context.socket_timeout)
        request, reader = build_request(head, client_socket, buffer)
    except ValueError as error:
        _reject_malformed(client_socket, client_addr_str, error)
        return True, b""

    WORKER_LOGGER.debug(
        "Request line parsed",
        extra={
            "event": "request_line_parsed",
            "method": request.method,
            "path": request.target,
            "client": client_addr_str,
        },
    )

    send_continue(client_socket, request)
    completed = dispatch_request(
        request, context.body_sink, context.delimiter, context.headers_sink
    )
    if reader is not None:
        buffer = reader.leftover

    close_connection = (
        not completed
        or _wants_close(request)
        or (lifecycle is not None and lifecycle.is_draining())
    )
    send_response(client_socket, ok_response(close_connection))
    return close_connection, buffer


def _cleanup(
    context: WorkerContext, client_socket: socket.socket, client_addr_str: str
) -> None:
    if context.lifecycle is not None:
        context.lifecycle.cleanup_worker(threading.current_thread())

    try:
        client_socket.shutdown(socket.SHUT_WR)
    except OSError:
        pass
    client_socket.close()

    WORKER_LOGGER.debug(
        "Socket closed",
        extra={"event": "socket_closed", "client": client_addr_str},
    )


def handle_client(
    client_socket: socket.socket,
    client_address: tuple,
    context: WorkerContext,
) -> None:
    """Serve requests on a client socket until the connection is closed."""
    buffer = b""
    client_addr_str = f"{client_address[0]}:{client_address[1]}"

    try:
        while True:
            with request_scope():
                should_terminate, buffer = _serve_one(
                    client_socket, buffer, context, client_addr_str
                )
            if should_terminate:
                break
    except (ConnectionError, TimeoutError, OSError) as error:
        WORKER_LOGGER.error(
            "Error handling client connection",
            extra={
                "event": "connection_error",
                "client": client_addr_str,
                "error_type": type(error).__name__,
            },
        )
    except Exception as error:  # pylint: disable=broad-except
        WORKER_LOGGER.error(
            "Unexpected error in worker",
            extra={
                "event": "worker_error",
                "client": client_addr_str,
                "error_type": type(error).__name__,
                "error": str(error),
            },
            exc_info=True,
        )
    finally:
        _cleanup(context, client_socket, client_addr_str)
