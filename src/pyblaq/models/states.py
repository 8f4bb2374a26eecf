"""Controller vocabularies and derived door states."""

from __future__ import annotations

import enum

from pyblaq.models._base import BlaqEnum


class CoverState(BlaqEnum):
    """Discrete cover state reported by the controller."""

    OPEN = "OPEN"
    CLOSED = "CLOSED"
    UNKNOWN = "UNKNOWN"


class CoverOperation(BlaqEnum):
    """Live operation flag reported by the controller."""

    IDLE = "IDLE"
    OPENING = "OPENING"
    CLOSING = "CLOSING"
    UNKNOWN = "UNKNOWN"


class LockState(BlaqEnum):
    """Lock state as exposed to consumers."""

    UNSECURED = "UNSECURED"
    SECURED = "SECURED"
    JAMMED = "JAMMED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_controller(cls, value: object) -> LockState:
        """Map the controller's lock vocabulary onto :class:`LockState`.

        ``LOCKED``/``SECURED`` become ``SECURED`` and ``UNLOCKED``/``UNSECURED``
        become ``UNSECURED``; anything else is ``UNKNOWN``.
        """
        if not isinstance(value, str):
            return cls.UNKNOWN
        return _LOCK_VOCABULARY.get(value.strip().upper(), cls.UNKNOWN)


_LOCK_VOCABULARY: dict[str, LockState] = {
    "LOCKED": LockState.SECURED,
    "SECURED": LockState.SECURED,
    "UNLOCKED": LockState.UNSECURED,
    "UNSECURED": LockState.UNSECURED,
}


class DoorState(enum.StrEnum):
    """Derived current door state."""

    OPEN = "open"
    CLOSED = "closed"
    OPENING = "opening"
    CLOSING = "closing"


class TargetDoorState(enum.StrEnum):
    """Door state a consumer can request."""

    OPEN = "open"
    CLOSED = "closed"
