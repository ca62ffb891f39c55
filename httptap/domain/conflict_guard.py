"""Decides whether logs must be discarded to keep console output readable."""

from typing import BinaryIO, Optional

from httptap.domain.destinations import STDERR, STDOUT, Destination, collides

ADVISORY_MESSAGE = (
    "httptap: log destination {log} is shared with request output; "
    "logs are discarded for this run\n"
)


def logging_silenced(
    body: Destination, headers: Optional[Destination], log: Destination
) -> bool:
    """Return True when the log destination shares a console stream with output."""
    return collides(log, body) or collides(log, headers)


def advisory_destination(
    body: Destination, headers: Optional[Destination], log: Destination
) -> Optional[Destination]:
    """Pick the console stream that carries neither request output nor logs.

    Returns None when there is no such stream, in which case no advisory
    can be written without corrupting output.
    """
    for candidate in (STDERR, STDOUT):
        if collides(candidate, log):
            continue
        if collides(candidate, body) or collides(candidate, headers):
            continue
        return candidate
    return None


def write_advisory(stream: BinaryIO, log: Destination) -> None:
    """Write the one-time notice that logging has been silenced."""
    stream.write(ADVISORY_MESSAGE.format(log=log).encode())
    stream.flush()
