"""Shared HTTP type definitions to avoid circular imports."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterator, Optional


@dataclass
class TapRequest:
    """A parsed request head plus a lazily consumed body stream."""

    method: str
    target: str
    path: str
    headers: dict[str, str]
    raw_head: bytes
    body: Optional[Iterator[bytes]] = None
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class HttpResponse:
    """Represents an HTTP response to be sent to a client."""

    status_line: str
    headers: dict[str, str]
    body: bytes
    close_connection: bool


def should_close(headers: dict[str, str]) -> bool:
    """Determine whether the connection should be closed after responding."""
    return headers.get("connection", "").lower() == "close"


def ok_response(close_connection: bool) -> HttpResponse:
    """Return the empty 200 OK sent for every captured request."""
    return HttpResponse("HTTP/1.1 200 OK", {}, b"", close_connection)


def bad_request_response() -> HttpResponse:
    """Return a 400 response; the connection is closed afterwards."""
    return HttpResponse(
        "HTTP/1.1 400 Bad Request",
        {"Content-Type": "text/plain"},
        b"bad request",
        True,
    )
