"""Resolution of destination descriptors into open, writable sinks."""

import logging
import sys
import threading
from dataclasses import dataclass
from typing import BinaryIO, Optional

from httptap.domain.correlation_id import CorrelationLoggerAdapter
from httptap.domain.destinations import Destination, DestinationKind

SINK_LOGGER = CorrelationLoggerAdapter(logging.getLogger("http_tap.sinks"), {})


class IoOpenError(OSError):
    """Raised when a file destination cannot be opened for writing."""

    def __init__(self, path: str, cause: OSError) -> None:
        super().__init__(cause.errno, f"could not open {path} for writing: {cause}")
        self.path = path
        self.cause = cause


@dataclass
class Sink:
    """An open binary stream together with the destination it came from."""

    destination: Destination
    stream: BinaryIO
    owned: bool = False

    def write(self, data: bytes) -> int:
        written = self.stream.write(data)
        self.stream.flush()
        return written if written is not None else len(data)

    def close(self) -> None:
        if self.owned and not self.stream.closed:
            self.stream.close()


def resolve_sink(destination: Destination) -> Sink:
    """Open the sink named by ``destination``.

    Console destinations map onto the process' standard streams and are
    never closed by this module. File destinations are created, or
    truncated when they already exist.
    """
    if destination.kind is DestinationKind.STDOUT:
        return Sink(destination, sys.stdout.buffer)
    if destination.kind is DestinationKind.STDERR:
        return Sink(destination, sys.stderr.buffer)

    path = str(destination.path)
    try:
        stream = open(path, "wb")  # pylint: disable=consider-using-with
    except OSError as error:
        raise IoOpenError(path, error) from error
    return Sink(destination, stream, owned=True)


class SinkRegistry:
    """Opens every distinct destination at most once for the process lifetime."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sinks: dict[Destination, Sink] = {}

    def resolve(self, destination: Optional[Destination]) -> Optional[Sink]:
        """Return the sink for ``destination``, opening it on first use."""
        if destination is None:
            return None
        with self._lock:
            sink = self._sinks.get(destination)
            if sink is None:
                sink = resolve_sink(destination)
                self._sinks[destination] = sink
            return sink

    def close(self) -> None:
        """Close every owned sink; console streams are left open."""
        with self._lock:
            sinks = list(self._sinks.values())
            self._sinks.clear()
        for sink in sinks:
            try:
                sink.close()
            except OSError as error:
                SINK_LOGGER.warning(
                    "Failed to close sink",
                    extra={
                        "event": "sink_close_failed",
                        "destination": str(sink.destination),
                        "error_type": type(error).__name__,
                    },
                )
