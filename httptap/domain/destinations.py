"""Destination descriptors naming where an output stream goes."""

import enum
from dataclasses import dataclass
from typing import Optional

DESTINATION_STDOUT = "STDOUT"
DESTINATION_STDERR = "STDERR"


class DestinationKind(enum.Enum):
    """Closed set of destination kinds."""

    STDOUT = "stdout"
    STDERR = "stderr"
    FILE = "file"


@dataclass(frozen=True)
class Destination:
    """A symbolic output destination, resolved to a sink at startup."""

    kind: DestinationKind
    path: Optional[str] = None

    @property
    def is_console(self) -> bool:
        return self.kind is not DestinationKind.FILE

    def __str__(self) -> str:
        if self.kind is DestinationKind.STDOUT:
            return DESTINATION_STDOUT
        if self.kind is DestinationKind.STDERR:
            return DESTINATION_STDERR
        return str(self.path)


STDOUT = Destination(DestinationKind.STDOUT)
STDERR = Destination(DestinationKind.STDERR)


def parse_destination(value: str) -> Destination:
    """Map a destination flag value onto a Destination.

    ``STDOUT`` and ``STDERR`` are matched exactly; anything else is taken
    as a file path. Empty values are rejected since they name no sink.
    """
    if value == DESTINATION_STDOUT:
        return STDOUT
    if value == DESTINATION_STDERR:
        return STDERR
    if not value:
        raise ValueError("destination must not be empty")
    return Destination(DestinationKind.FILE, value)


def parse_optional_destination(value: Optional[str]) -> Optional[Destination]:
    """Like parse_destination, but an empty value disables the stream."""
    if not value:
        return None
    return parse_destination(value)


def collides(first: Optional[Destination], second: Optional[Destination]) -> bool:
    """Return True when both destinations name the same console stream.

    File destinations never collide, not even two descriptors pointing at
    the same path.
    """
    if first is None or second is None:
        return False
    if not first.is_console or not second.is_console:
        return False
    return first.kind is second.kind
