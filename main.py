"""HTTP tap: write the body of every incoming request to a configurable sink."""

import sys
from typing import Optional

from httptap.bootstrap.config import ConfigurationError, build_config, parse_cli_args
from httptap.bootstrap.logging_setup import configure_logging
from httptap.domain.conflict_guard import (
    advisory_destination,
    logging_silenced,
    write_advisory,
)
from httptap.domain.sinks import IoOpenError, SinkRegistry
from httptap.lifecycle.manager import TapServer, install_signal_handlers
from httptap.lifecycle.state import ServerLifecycle
from httptap.transport.context import WorkerContext


def main(argv: Optional[list[str]] = None) -> int:
    """Run the tap until interrupted and return the process exit status."""
    args = parse_cli_args(sys.argv[1:] if argv is None else argv)
    try:
        config = build_config(args)
    except ConfigurationError as error:
        sys.stderr.write(f"Could not parse flags: {error}\n")
        return 1

    registry = SinkRegistry()
    silenced = logging_silenced(config.body, config.headers, config.log)
    try:
        log_sink = None if silenced else registry.resolve(config.log)
        body_sink = registry.resolve(config.body)
        headers_sink = registry.resolve(config.headers)
    except IoOpenError as error:
        sys.stderr.write(f"Could not open output destination: {error}\n")
        registry.close()
        return 1

    if silenced and config.advisory:
        notice_destination = advisory_destination(
            config.body, config.headers, config.log
        )
        if notice_destination is not None:
            write_advisory(registry.resolve(notice_destination).stream, config.log)

    logger = configure_logging(config.log_level, log_sink, config.use_json)
    logger.info(
        "Initialization finished",
        extra={
            "event": "tap_initialized",
            "body_destination": str(config.body),
            "headers_destination": str(config.headers or ""),
            "log_destination": str(config.log),
            "socket_timeout": config.socket_timeout,
            "shutdown_grace_seconds": config.shutdown_grace_seconds,
        },
    )

    lifecycle = ServerLifecycle()
    context = WorkerContext(
        body_sink=body_sink,
        delimiter=config.delimiter,
        headers_sink=headers_sink,
        lifecycle=lifecycle,
        socket_timeout=config.socket_timeout,
    )
    server = TapServer(config, context, lifecycle)
    install_signal_handlers(lifecycle)

    try:
        server.start()
    except OSError as error:
        logger.error(
            "HTTP server could not bind",
            extra={
                "event": "bind_failed",
                "interface": str(config.interface),
                "port": config.port,
                "error_type": type(error).__name__,
                "error": str(error),
            },
        )
        registry.close()
        return 1

    server.wait_for_interrupt()
    if not server.shutdown():
        return 1

    registry.close()
    return 0 if lifecycle.failure is None else 1


if __name__ == "__main__":
    sys.exit(main())
