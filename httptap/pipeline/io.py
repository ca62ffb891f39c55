"""HTTP input/output: request heads, streamed bodies and responses."""

import logging
import socket
import time
import urllib.parse
from typing import Callable, Iterator, Optional, Tuple

from httptap.domain.correlation_id import (
    CorrelationLoggerAdapter,
    adopt_request_id,
    current_request_id,
)
from httptap.domain.http_types import HttpResponse, TapRequest

IO_LOGGER = CorrelationLoggerAdapter(logging.getLogger("http_tap.io"), {})

HEADER_DELIMITER = b"\r\n\r\n"
CRLF = b"\r\n"
RECV_SIZE = 4096
BODY_CHUNK_SIZE = 64 * 1024
MAX_HEAD_BYTES = 64 * 1024
IDLE_POLL_SECONDS = 0.25
CONTINUE_RESPONSE = b"HTTP/1.1 100 Continue\r\n\r\n"


class BodyReadError(Exception):
    """Raised when a request body cannot be read to completion."""


class IncompleteBody(BodyReadError, ConnectionError):
    """Raised when the client disconnects before the body is complete."""


class MalformedChunk(BodyReadError, ValueError):
    """Raised when a chunked body carries an invalid chunk header."""


def parse_headers(lines: list[str]) -> dict[str, str]:
    """Convert raw header lines into a lowercase-keyed dictionary."""
    parsed = {}
    for line in lines:
        if ":" not in line:
            continue
        name, value = line.split(":", 1)
        parsed[name.strip().lower()] = value.strip()
    return parsed


def parse_request_line(request_line: str) -> Tuple[str, str, str]:
    """Parse the method, raw target and decoded path from the request line."""
    try:
        method, target, version = request_line.split(" ", 2)
    except ValueError as exc:
        raise ValueError("Invalid request line") from exc
    if not method or not target or not version.startswith("HTTP/"):
        raise ValueError("Invalid request line")

    path = urllib.parse.unquote(urllib.parse.urlsplit(target).path) or target
    return method, target, path


def body_framing(headers: dict[str, str]) -> Optional[Tuple[Optional[int], bool]]:
    """Return ``(content_length, chunked)`` or None for a bodiless request.

    A chunked Transfer-Encoding wins over Content-Length. A declared length
    of zero counts as no body.
    """
    transfer_encoding = headers.get("transfer-encoding")
    if transfer_encoding is not None:
        codings = [c.strip().lower() for c in transfer_encoding.split(",")]
        if codings[-1] != "chunked":
            raise ValueError("Unsupported Transfer-Encoding")
        return None, True

    header_value = headers.get("content-length")
    if header_value is None:
        return None
    try:
        content_length = int(header_value)
    except ValueError as exc:
        raise ValueError("Invalid Content-Length") from exc
    if content_length < 0:
        raise ValueError("Negative Content-Length")
    if content_length == 0:
        return None
    return content_length, False


def receive_head(
    client_socket: socket.socket,
    buffer: bytes,
    should_abandon: Optional[Callable[[], bool]] = None,
    idle_timeout: Optional[float] = None,
) -> Tuple[Optional[Tuple[str, str, str, dict[str, str], bytes]], bytes]:
    """Read until a complete request head is buffered.

    Returns ``(None, b"")`` when the client closes the connection, or when
    ``should_abandon`` reports true while no byte of a new request has
    arrived yet. Raises TimeoutError once ``idle_timeout`` elapses.
    """
    deadline = time.monotonic() + idle_timeout if idle_timeout else None
    while HEADER_DELIMITER not in buffer:
        if len(buffer) > MAX_HEAD_BYTES:
            raise ValueError("Request head too large")
        client_socket.settimeout(IDLE_POLL_SECONDS)
        try:
            chunk = client_socket.recv(RECV_SIZE)
        except socket.timeout:
            if not buffer and should_abandon is not None and should_abandon():
                return None, b""
            if deadline is not None and time.monotonic() >= deadline:
                raise TimeoutError("Request head not received in time") from None
            continue
        if not chunk:
            return None, b""
        buffer += chunk

    head_block, remainder = buffer.split(HEADER_DELIMITER, 1)
    head_lines = head_block.decode("latin-1").split("\r\n")
    method, target, path = parse_request_line(head_lines[0])
    headers = parse_headers(head_lines[1:])

    incoming_request_id = headers.get("x-request-id")
    if incoming_request_id:
        adopt_request_id(incoming_request_id)

    IO_LOGGER.debug(
        "Parsed request head",
        extra={"event": "request_head_parsed", "method": method, "path": path},
    )
    return (method, target, path, headers, head_block + HEADER_DELIMITER), remainder


class BodyReader:
    """Iterates over a request body in chunks of at most BODY_CHUNK_SIZE bytes.

    Bytes received past the end of the body are kept in ``leftover`` so a
    pipelined request on the same connection is not lost.
    """

    def __init__(
        self,
        client_socket: socket.socket,
        buffer: bytes,
        content_length: Optional[int] = None,
        chunked: bool = False,
    ) -> None:
        self._socket = client_socket
        self._buffer = buffer
        self._content_length = content_length
        self._chunked = chunked
        self.leftover = b""

    def __iter__(self) -> Iterator[bytes]:
        if self._chunked:
            return self._read_chunked()
        return self._read_fixed()

    def _recv(self, size: int) -> bytes:
        data = self._socket.recv(size)
        if not data:
            raise IncompleteBody("Client closed connection before body completed")
        return data

    def _read_fixed(self) -> Iterator[bytes]:
        remaining = self._content_length or 0
        if self._buffer:
            head = self._buffer[:remaining]
            self.leftover = self._buffer[remaining:]
            self._buffer = b""
            remaining -= len(head)
            if head:
                yield head
        while remaining > 0:
            data = self._recv(min(BODY_CHUNK_SIZE, remaining))
            remaining -= len(data)
            yield data

    def _fill_line(self) -> bytes:
        while CRLF not in self._buffer:
            if len(self._buffer) > MAX_HEAD_BYTES:
                raise MalformedChunk("Chunk header line too long")
            self._buffer += self._recv(RECV_SIZE)
        line, self._buffer = self._buffer.split(CRLF, 1)
        return line

    def _read_chunked(self) -> Iterator[bytes]:
        while True:
            size_line = self._fill_line().split(b";", 1)[0].strip()
            try:
                size = int(size_line, 16)
            except ValueError as exc:
                raise MalformedChunk(f"Invalid chunk size {size_line!r}") from exc
            if size < 0:
                raise MalformedChunk("Negative chunk size")
            if size == 0:
                break
            remaining = size
            while remaining > 0:
                if not self._buffer:
                    self._buffer = self._recv(min(BODY_CHUNK_SIZE, remaining + 2))
                data = self._buffer[:remaining]
                self._buffer = self._buffer[remaining:]
                remaining -= len(data)
                yield data
            if self._fill_line():
                raise MalformedChunk("Chunk data not terminated by CRLF")

        while self._fill_line():
            pass
        self.leftover = self._buffer
        self._buffer = b""


def build_request(
    head: Tuple[str, str, str, dict[str, str], bytes],
    client_socket: socket.socket,
    remainder: bytes,
) -> Tuple[TapRequest, Optional[BodyReader]]:
    """Create the request context, attaching a body reader when one is framed."""
    method, target, path, headers, raw_head = head
    framing = body_framing(headers)
    if framing is None:
        return TapRequest(method, target, path, headers, raw_head), None
    content_length, chunked = framing
    reader = BodyReader(client_socket, remainder, content_length, chunked)
    return TapRequest(method, target, path, headers, raw_head, iter(reader)), reader


def send_continue(client_socket: socket.socket, request: TapRequest) -> None:
    """Answer ``Expect: 100-continue`` before the body is read."""
    if request.body is None:
        return
    if request.headers.get("expect", "").lower() == "100-continue":
        client_socket.sendall(CONTINUE_RESPONSE)


def send_response(client_socket: socket.socket, response: HttpResponse) -> None:
    """Serialize and send the HTTP response over the socket."""
    headers = dict(response.headers)

    request_id = current_request_id()
    if request_id:
        headers["X-Request-ID"] = request_id

    headers["Content-Length"] = str(len(response.body))
    if response.close_connection:
        headers["Connection"] = "close"
    header_lines = [response.status_line]
    header_lines.extend(f"{name}: {value}" for name, value in headers.items())
    header_block = "\r\n".join(header_lines).encode() + HEADER_DELIMITER
    client_socket.sendall(header_block + response.body)
    IO_LOGGER.debug(
        "Sent response",
        extra={"event": "response_sent", "status": response.status_line},
    )
