"""Logging configuration onto the resolved log sink."""

import json
import logging
import re
from typing import Optional

from httptap.domain.correlation_id import CorrelationLoggerAdapter
from httptap.domain.sinks import Sink

LOGGER_NAME = "http_tap"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(correlation_id)s] %(name)s :: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_LEVELS = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}
DISABLED_LEVEL = logging.ERROR + 1

SENSITIVE_PATTERNS = [
    re.compile(r"(?i)(authorization|token|key|signature|password|secret|api[_-]?key)"),
    re.compile(r"\b[A-Fa-f0-9]{32,}\b"),
    re.compile(r"\b[A-Za-z0-9+/]{32,}={0,2}\b"),
]

REDACTED = "[REDACTED]"
REDACTED_KEYS = {"path"}

EXTRA_KEYS = [
    "datetime",
    "method",
    "path",
    "client",
    "bytes_in",
    "status",
    "error_type",
    "error",
    "interface",
    "port",
    "body_destination",
    "headers_destination",
    "log_destination",
    "destination",
    "socket_timeout",
    "shutdown_grace_seconds",
    "grace_seconds",
    "remaining_workers",
    "state",
    "signal",
]


def redact_sensitive(value: str) -> str:
    """Redact values that look like credentials."""
    if not value:
        return value

    for pattern in SENSITIVE_PATTERNS:
        if pattern.search(value):
            return REDACTED

    return value


def redact_target(target: str) -> str:
    """Redact credential-looking query parameters; the path is logged as is."""
    path, separator, query = target.partition("?")
    if not separator:
        return target

    params = []
    for param in query.split("&"):
        if redact_sensitive(param) != param:
            name, equals, _ = param.partition("=")
            param = f"{name}={REDACTED}" if equals else REDACTED
        params.append(param)
    return path + "?" + "&".join(params)


class CorrelationIdFilter(logging.Filter):  # pylint: disable=too-few-public-methods
    """Ensure correlation_id field exists in log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = "-"
        return True


class JsonFormatter(logging.Formatter):
    """JSON formatter with stable key ordering for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "correlation_id": getattr(record, "correlation_id", "-"),
            "component": getattr(record, "component", "unknown"),
            "message": record.getMessage(),
        }

        if hasattr(record, "event"):
            log_data["event"] = record.event

        for key in EXTRA_KEYS:
            if hasattr(record, key):
                value = getattr(record, key)
                if key in REDACTED_KEYS and isinstance(value, str):
                    value = redact_target(value)
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, sort_keys=True, default=str)


class SinkHandler(logging.StreamHandler):
    """Stream handler writing UTF-8 encoded lines to a binary sink."""

    def __init__(self, sink: Sink) -> None:
        super().__init__(sink.stream)
        self.sink = sink

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = self.format(record) + self.terminator
            self.sink.write(message.encode("utf-8"))
        except RecursionError:
            raise
        except Exception:  # pylint: disable=broad-except
            self.handleError(record)


def resolve_level(level_name: Optional[str]) -> int:
    """Translate a verbosity name into a numeric level; None disables logging."""
    if not level_name:
        return DISABLED_LEVEL
    level = LOG_LEVELS.get(level_name.lower())
    if level is None:
        raise ValueError(f"unknown log level {level_name!r}")
    return level


def _build_handler(
    sink: Optional[Sink], level: int, use_json: bool = True
) -> logging.Handler:
    """Create the handler for the log sink, discarding everything without one."""
    if sink is None:
        return logging.NullHandler()
    handler = SinkHandler(sink)
    handler.setLevel(level)

    if use_json:
        handler.setFormatter(JsonFormatter(datefmt=DATE_FORMAT))
    else:
        handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))

    handler.addFilter(CorrelationIdFilter())
    return handler


def configure_logging(
    level: int = DISABLED_LEVEL, sink: Optional[Sink] = None, use_json: bool = True
) -> CorrelationLoggerAdapter:
    """Configure and return the project logger writing to ``sink``.

    Passing no sink, which is what a silenced log destination amounts to,
    installs a NullHandler so records are dropped.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    logger.addHandler(_build_handler(sink, level, use_json))
    adapter = CorrelationLoggerAdapter(logger, {})
    adapter.debug(
        "Logging configured",
        extra={
            "event": "logging_configured",
            "destination": str(sink.destination) if sink is not None else "discard",
        },
    )
    return adapter
