"""Shared fixtures for unit tests."""

import io
import logging

import pytest

from httptap.domain.destinations import Destination, DestinationKind
from httptap.domain.sinks import Sink


@pytest.fixture(autouse=True)
def enable_log_propagation():
    """Ensure logs propagate to root so caplog can catch them."""
    logger = logging.getLogger("http_tap")
    old_propagate = logger.propagate
    old_level = logger.level
    old_handlers = list(logger.handlers)
    logger.propagate = True
    logger.setLevel(logging.DEBUG)
    yield
    logger.propagate = old_propagate
    logger.setLevel(old_level)
    logger.handlers[:] = old_handlers


@pytest.fixture(name="memory_sink")
def fixture_memory_sink():
    """A sink backed by an in-memory buffer."""
    return Sink(Destination(DestinationKind.FILE, "memory"), io.BytesIO())
