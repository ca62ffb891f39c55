"""Main connection acceptance loop."""

import logging
import socket
import threading

from httptap.domain.correlation_id import CorrelationLoggerAdapter
from httptap.lifecycle.state import ServerLifecycle
from httptap.transport.context import WorkerContext
from httptap.transport.worker import handle_client

ACCEPT_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("http_tap.transport.accept"), {}
)


def _handle_accepted_client(
    client_socket: socket.socket,
    client_address: tuple,
    context: WorkerContext,
    lifecycle: ServerLifecycle,
) -> None:
    """Start a worker thread for a newly accepted connection."""
    client_addr_str = f"{client_address[0]}:{client_address[1]}"
    if ACCEPT_LOGGER.logger.isEnabledFor(logging.DEBUG):
        ACCEPT_LOGGER.debug(
            "Client connection accepted",
            extra={"event": "client_accepted", "client": client_addr_str},
        )

    # Workers are daemons so an expired shutdown deadline does not wait on them.
    thread = threading.Thread(
        target=handle_client,
        args=(client_socket, client_address, context),
        daemon=True,
    )
    lifecycle.register_worker(thread)
    thread.start()


def run_accept_loop(
    server_socket: socket.socket, context: WorkerContext, lifecycle: ServerLifecycle
) -> None:
    """Accept connections until the lifecycle stops the listener."""
    try:
        while True:
            try:
                client_socket, client_address = server_socket.accept()
            except socket.timeout:
                if lifecycle.should_stop():
                    break
                continue
            except OSError as error:
                if lifecycle.should_stop():
                    break
                ACCEPT_LOGGER.error(
                    "Socket accept failed",
                    extra={"event": "accept_error", "error_type": type(error).__name__},
                )
                continue

            if lifecycle.should_stop():
                client_socket.close()
                break

            _handle_accepted_client(client_socket, client_address, context, lifecycle)
    finally:
        server_socket.close()
        ACCEPT_LOGGER.info(
            "Listener closed", extra={"event": "listener_closed"}
        )
