"""Context object shared across worker threads."""

from dataclasses import dataclass
from typing import Optional

from httptap.domain.sinks import Sink
from httptap.lifecycle.state import ServerLifecycle


@dataclass
class WorkerContext:
    """Sinks and settings injected into every connection handler."""

    body_sink: Sink
    delimiter: bytes = b"\n"
    headers_sink: Optional[Sink] = None
    lifecycle: Optional[ServerLifecycle] = None
    socket_timeout: Optional[float] = None
