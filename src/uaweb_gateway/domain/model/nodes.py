"""Address space domain models.

Plain value types returned to API callers: browse edges, decoded values
and the deadband capability of a variable node.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any


class DeadbandMode(str, Enum):
    """Deadband filter requested for a monitored item."""

    NONE = "none"
    ABSOLUTE = "absolute"
    PERCENT = "percent"

    @property
    def filter_type(self) -> int:
        """OPC UA DeadbandType value (Part 4, 7.22.2)."""
        return _DEADBAND_FILTER_TYPES[self]


_DEADBAND_FILTER_TYPES = {
    DeadbandMode.NONE: 0,
    DeadbandMode.ABSOLUTE: 1,
    DeadbandMode.PERCENT: 2,
}


class DeadbandSupport(Enum):
    """Deadband modes a variable node supports.

    Absolute deadband needs a numeric data type; percent deadband needs
    an EURange property to compute the percentage against.
    """

    ABSOLUTE_AND_PERCENT = "Absolute, Percentage"
    ABSOLUTE = "Absolute"
    PERCENT = "Percentage"
    NONE = "None"

    @classmethod
    def from_flags(cls, absolute: bool, percent: bool) -> DeadbandSupport:
        if absolute:
            return cls.ABSOLUTE_AND_PERCENT if percent else cls.ABSOLUTE
        return cls.PERCENT if percent else cls.NONE

    @property
    def absolute(self) -> bool:
        return self in (DeadbandSupport.ABSOLUTE_AND_PERCENT, DeadbandSupport.ABSOLUTE)

    @property
    def percent(self) -> bool:
        return self in (DeadbandSupport.ABSOLUTE_AND_PERCENT, DeadbandSupport.PERCENT)


class ServerState(IntEnum):
    """Values of Server_ServerStatus_State (i=2259)."""

    RUNNING = 0
    FAILED = 1
    NO_CONFIGURATION = 2
    SUSPENDED = 3
    SHUTDOWN = 4
    TEST = 5
    COMMUNICATION_FAULT = 6
    UNKNOWN = 7


@dataclass(frozen=True)
class EdgeDescription:
    """One reference returned by a hierarchical browse.

    Attributes:
        node_id: Target node id string (ns=N;x=...)
        display_name: Target display name text
        node_class: Target node class name (Object, Variable, ...)
        reference_type_id: Reference type node id string
    """

    node_id: str
    display_name: str
    node_class: str
    reference_type_id: str


@dataclass(frozen=True)
class UaValue:
    """A decoded node value.

    Attributes:
        value: JSON-friendly Python value
        type_name: Builtin OPC UA type name (Double, String, ...)
        is_array: Whether the value is a one-dimensional array
    """

    value: Any
    type_name: str
    is_array: bool = False


@dataclass(frozen=True)
class NodeDetails:
    """Attributes of a node as returned by a read.

    value is only set for variable nodes.
    """

    node_id: str
    node_class: str
    browse_name: str
    display_name: str
    description: str = ""
    value: UaValue | None = None
    status: str = "Good"
