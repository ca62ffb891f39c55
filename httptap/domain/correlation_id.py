"""Request ids that tie every log record to the request that caused it."""

import contextlib
import contextvars
import logging
import uuid
from typing import Any, Iterator, MutableMapping, Optional

LOGGER_PREFIX = "http_tap."
NO_REQUEST = "-"

_request_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "request_id", default=None
)


@contextlib.contextmanager
def request_scope() -> Iterator[str]:
    """Give the enclosed request handling a fresh UUID4 request id.

    The previous id, usually none, is restored on exit even when the client
    replaced the generated id through ``adopt_request_id``.
    """
    token = _request_id.set(str(uuid.uuid4()))
    try:
        yield _request_id.get()
    finally:
        _request_id.reset(token)


def adopt_request_id(value: str) -> None:
    """Replace the current request id with one supplied by the client."""
    _request_id.set(value)


def current_request_id() -> Optional[str]:
    return _request_id.get()


def _component(logger_name: str) -> str:
    head, prefix, rest = logger_name.partition(LOGGER_PREFIX)
    return rest if prefix and not head else logger_name


class CorrelationLoggerAdapter(logging.LoggerAdapter):
    """Stamps records with the current request id and the emitting component."""

    def process(
        self, msg: str, kwargs: MutableMapping[str, Any]
    ) -> tuple[str, MutableMapping[str, Any]]:
        kwargs["extra"] = {
            **(kwargs.get("extra") or {}),
            "correlation_id": _request_id.get() or NO_REQUEST,
            "component": _component(self.logger.name),
        }
        return msg, kwargs
