"""Server lifecycle state management."""

import enum
import logging
import threading
import time
from typing import Optional

from httptap.domain.correlation_id import CorrelationLoggerAdapter

LIFECYCLE_LOGGER = CorrelationLoggerAdapter(logging.getLogger("http_tap.lifecycle"), {})


class LifecycleState(enum.Enum):
    """States of the listener; STOPPED is terminal."""

    STARTING = "starting"
    LISTENING = "listening"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


_TRANSITIONS = {
    LifecycleState.STARTING: {LifecycleState.LISTENING, LifecycleState.STOPPED},
    LifecycleState.LISTENING: {LifecycleState.SHUTTING_DOWN},
    LifecycleState.SHUTTING_DOWN: {LifecycleState.STOPPED},
    LifecycleState.STOPPED: set(),
}


class ServerLifecycle:
    """Tracks the listener state, the shutdown request and worker threads."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state = LifecycleState.STARTING
        self._shutdown_requested = threading.Event()
        self._draining_event = threading.Event()
        self._failure: Optional[BaseException] = None
        self._workers: set[threading.Thread] = set()

    @property
    def state(self) -> LifecycleState:
        with self._lock:
            return self._state

    @property
    def failure(self) -> Optional[BaseException]:
        """The error that crashed the listener, if any."""
        with self._lock:
            return self._failure

    def transition(self, new_state: LifecycleState) -> None:
        """Move to ``new_state``, rejecting transitions the state machine lacks."""
        with self._lock:
            if new_state not in _TRANSITIONS[self._state]:
                raise RuntimeError(
                    f"invalid lifecycle transition {self._state.value} -> {new_state.value}"
                )
            self._state = new_state
        LIFECYCLE_LOGGER.debug(
            "Lifecycle state changed",
            extra={"event": "lifecycle_transition", "state": new_state.value},
        )

    def request_shutdown(self) -> None:
        """Record an interrupt; safe to call from a signal handler."""
        self._shutdown_requested.set()

    def fail(self, error: BaseException) -> None:
        """Record a fatal listener error and wake the waiting main thread."""
        with self._lock:
            self._failure = error
        self._shutdown_requested.set()

    def wait_for_shutdown_request(self, timeout: Optional[float] = None) -> bool:
        """Block until an interrupt or a listener failure arrives."""
        return self._shutdown_requested.wait(timeout)

    def should_stop(self) -> bool:
        """Check if the listener should stop accepting new connections."""
        return self._draining_event.is_set()

    def is_draining(self) -> bool:
        """Check if in-flight requests are being drained."""
        return self._draining_event.is_set()

    def begin_draining(self) -> None:
        """Stop accepting connections and start draining in-flight requests."""
        self.transition(LifecycleState.SHUTTING_DOWN)
        self._draining_event.set()
        LIFECYCLE_LOGGER.info(
            "Beginning graceful shutdown", extra={"event": "shutdown_started"}
        )

    def register_worker(self, thread: threading.Thread) -> None:
        """Register a worker thread for tracking."""
        with self._lock:
            self._workers.add(thread)

    def cleanup_worker(self, thread: threading.Thread) -> None:
        """Remove a worker thread from tracking."""
        with self._lock:
            self._workers.discard(thread)

    def active_worker_count(self) -> int:
        """Return the number of currently tracked worker threads."""
        with self._lock:
            return len(self._workers)

    def wait_for_workers(self, timeout: float) -> bool:
        """Wait for all worker threads to complete within the timeout."""
        deadline = time.monotonic() + timeout
        while True:
            with self._lock:
                self._workers = {w for w in self._workers if w.is_alive()}
                active_workers = list(self._workers)
            if not active_workers:
                return True
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                LIFECYCLE_LOGGER.warning(
                    "Shutdown timeout exceeded",
                    extra={
                        "event": "workers_still_active",
                        "remaining_workers": len(active_workers),
                    },
                )
                return False
            for worker in active_workers:
                worker.join(timeout=min(0.1, remaining))
                if time.monotonic() >= deadline:
                    break
