"""Starting, interrupting and draining the HTTP listener."""

import logging
import signal
import threading
import time
from typing import Callable, Optional

from httptap.bootstrap.config import TapConfig
from httptap.bootstrap.socket_factory import create_server_socket
from httptap.domain.correlation_id import CorrelationLoggerAdapter
from httptap.lifecycle.state import LifecycleState, ServerLifecycle
from httptap.transport.accept_loop import run_accept_loop
from httptap.transport.context import WorkerContext

MANAGER_LOGGER = CorrelationLoggerAdapter(logging.getLogger("http_tap.lifecycle"), {})

SHUTDOWN_POLL_SECONDS = 0.5


class TapServer:
    """Owns the listener thread and drives the lifecycle state machine.

    ``start`` binds on the calling thread so bind errors surface there,
    then serves connections from a background thread. ``shutdown`` drains
    in-flight requests within a deadline.
    """

    def __init__(
        self,
        config: TapConfig,
        context: WorkerContext,
        lifecycle: Optional[ServerLifecycle] = None,
    ) -> None:
        self.config = config
        self.lifecycle = lifecycle or context.lifecycle or ServerLifecycle()
        context.lifecycle = self.lifecycle
        self.context = context
        self.port: Optional[int] = None
        self._accept_thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Bind the listener and begin accepting; OSError means bind failure."""
        try:
            server_socket = create_server_socket(self.config)
        except OSError:
            self.lifecycle.transition(LifecycleState.STOPPED)
            raise
        self.port = server_socket.getsockname()[1]
        self.lifecycle.transition(LifecycleState.LISTENING)

        self._accept_thread = threading.Thread(
            target=self._serve, args=(server_socket,), name="http-tap-accept"
        )
        self._accept_thread.start()
        MANAGER_LOGGER.info(
            "Server listening for connections",
            extra={
                "event": "server_listening",
                "interface": str(self.config.interface),
                "port": self.port,
            },
        )

    def _serve(self, server_socket) -> None:
        try:
            run_accept_loop(server_socket, self.context, self.lifecycle)
        except Exception as error:  # pylint: disable=broad-except
            MANAGER_LOGGER.error(
                "HTTP server crashed",
                extra={
                    "event": "server_crashed",
                    "error_type": type(error).__name__,
                    "error": str(error),
                },
                exc_info=True,
            )
            self.lifecycle.fail(error)

    def wait_for_interrupt(self) -> None:
        """Block until an interrupt or a listener failure is recorded."""
        while not self.lifecycle.wait_for_shutdown_request(SHUTDOWN_POLL_SECONDS):
            pass

    def shutdown(self, timeout: Optional[float] = None) -> bool:
        """Stop accepting, drain in-flight requests; False if the deadline passed."""
        grace = self.config.shutdown_grace_seconds if timeout is None else timeout
        deadline = time.monotonic() + grace
        self.lifecycle.begin_draining()

        if self._accept_thread is not None:
            self._accept_thread.join(max(0.0, deadline - time.monotonic()))
            if self._accept_thread.is_alive():
                MANAGER_LOGGER.error(
                    "Could not shutdown server gracefully",
                    extra={"event": "shutdown_timeout", "grace_seconds": grace},
                )
                return False

        MANAGER_LOGGER.info(
            "Waiting for active connections to complete",
            extra={"event": "shutdown_waiting", "grace_seconds": grace},
        )
        drained = self.lifecycle.wait_for_workers(max(0.0, deadline - time.monotonic()))
        if not drained:
            MANAGER_LOGGER.error(
                "Could not shutdown server gracefully",
                extra={
                    "event": "shutdown_timeout",
                    "grace_seconds": grace,
                    "remaining_workers": self.lifecycle.active_worker_count(),
                },
            )
            return False

        self.lifecycle.transition(LifecycleState.STOPPED)
        MANAGER_LOGGER.info("Server shutdown complete", extra={"event": "server_stopped"})
        return True


def install_signal_handlers(
    lifecycle: ServerLifecycle,
    signals: tuple = (signal.SIGINT, signal.SIGTERM),
) -> Callable[[int, object], None]:
    """Route interrupt signals to the lifecycle's shutdown request."""

    def shutdown_handler(signum: int, _frame) -> None:
        MANAGER_LOGGER.info(
            "Received shutdown signal", extra={"event": "signal_received", "signal": signum}
        )
        lifecycle.request_shutdown()

    for signum in signals:
        signal.signal(signum, shutdown_handler)
    return shutdown_handler
