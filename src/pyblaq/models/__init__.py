"""Typed models for controller events, identity and derived states."""

from pyblaq.models._base import BlaqBaseModel, BlaqEnum
from pyblaq.models.events import (
    CoverRecord,
    EventKind,
    PingInfo,
    RawEvent,
    StateRecord,
    parse_cover_record,
    parse_ping,
    parse_state_record,
    round_half_up,
)
from pyblaq.models.identity import DeviceIdentity, format_mac
from pyblaq.models.states import (
    CoverOperation,
    CoverState,
    DoorState,
    LockState,
    TargetDoorState,
)

__all__ = [
    "BlaqBaseModel",
    "BlaqEnum",
    "CoverOperation",
    "CoverRecord",
    "CoverState",
    "DeviceIdentity",
    "DoorState",
    "EventKind",
    "LockState",
    "PingInfo",
    "RawEvent",
    "StateRecord",
    "TargetDoorState",
    "format_mac",
    "parse_cover_record",
    "parse_ping",
    "parse_state_record",
    "round_half_up",
]
