"""Per-request handling: tee the request body into the body sink."""

import logging
from typing import Any, Iterable, Optional

from httptap.bootstrap.logging_setup import redact_target
from httptap.domain.correlation_id import CorrelationLoggerAdapter
from httptap.domain.http_types import TapRequest
from httptap.domain.sinks import Sink
from httptap.pipeline.io import BodyReadError

DISPATCH_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("http_tap.pipeline.dispatcher"), {}
)


def _request_fields(request: TapRequest) -> dict[str, Any]:
    return {
        "datetime": request.received_at.isoformat(),
        "method": request.method,
        "path": redact_target(request.target),
    }


def _write_headers(
    request: TapRequest, sink: Optional[Sink], fields: dict[str, Any]
) -> None:
    if sink is None:
        return
    try:
        sink.write(request.raw_head)
    except OSError as error:
        DISPATCH_LOGGER.error(
            "Could not write request headers",
            extra={
                **fields,
                "event": "headers_write_failed",
                "error_type": type(error).__name__,
                "error": str(error),
            },
        )


def copy_body(
    body: Iterable[bytes], sink: Sink, fields: dict[str, Any]
) -> tuple[bool, int]:
    """Stream every body chunk into ``sink``; return (completed, bytes copied)."""
    copied = 0
    try:
        for chunk in body:
            sink.write(chunk)
            copied += len(chunk)
    except (BodyReadError, OSError) as error:
        DISPATCH_LOGGER.error(
            "Could not read request body for request",
            extra={
                **fields,
                "event": "body_read_failed",
                "bytes_in": copied,
                "error_type": type(error).__name__,
                "error": str(error),
            },
        )
        return False, copied
    return True, copied


def dispatch_request(
    request: TapRequest,
    body_sink: Sink,
    delimiter: bytes,
    headers_sink: Optional[Sink] = None,
) -> bool:
    """Capture one request; return False when its body was not fully consumed.

    A bodiless request produces no output and no log entry. Otherwise the
    delimiter is written after the body even when the copy failed, so it
    keeps working as a record separator for partial reads.
    """
    if request.body is None:
        return True

    fields = _request_fields(request)
    _write_headers(request, headers_sink, fields)
    completed, copied = copy_body(request.body, body_sink, fields)

    try:
        body_sink.write(delimiter)
    except OSError as error:
        DISPATCH_LOGGER.error(
            "Could not write delimiter after writing body",
            extra={
                **fields,
                "event": "delimiter_write_failed",
                "error_type": type(error).__name__,
                "error": str(error),
            },
        )

    if completed:
        DISPATCH_LOGGER.info(
            "Request body captured",
            extra={**fields, "event": "request_captured", "bytes_in": copied},
        )
    return completed
