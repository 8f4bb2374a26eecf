"""pyblaq - Async Python client for blaQ (Konnected) garage door controllers."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyblaq")
except PackageNotFoundError:
    __version__ = "0+local"
from pyblaq._eventsource import BlaqEventSource, StreamEndpoint
from pyblaq._transport import CommandIssuer, CommandTransport, HttpCommandTransport
from pyblaq.config import BlaqConfig, EntityToggles
from pyblaq.entities import (
    GarageDoor,
    GarageLight,
    GarageLock,
    LearnMode,
    MotionSensor,
    ObstructionSensor,
    PreCloseWarning,
)
from pyblaq.exceptions import (
    BlaqConfigError,
    BlaqError,
    BlaqIndeterminateStateError,
    BlaqInvalidInputError,
    BlaqPayloadError,
    BlaqTransportError,
)
from pyblaq.hub import BlaqHub, HubRegistry
from pyblaq.ingestion.logs import DoorLogInterpreter, PositionScale
from pyblaq.models import (
    CoverOperation,
    CoverState,
    DeviceIdentity,
    DoorState,
    EventKind,
    LockState,
    RawEvent,
    StateRecord,
    TargetDoorState,
    format_mac,
)

__all__ = [
    "__version__",
    "BlaqConfig",
    "BlaqConfigError",
    "BlaqError",
    "BlaqEventSource",
    "BlaqHub",
    "BlaqIndeterminateStateError",
    "BlaqInvalidInputError",
    "BlaqPayloadError",
    "BlaqTransportError",
    "CommandIssuer",
    "CommandTransport",
    "CoverOperation",
    "CoverState",
    "DeviceIdentity",
    "DoorLogInterpreter",
    "DoorState",
    "EntityToggles",
    "EventKind",
    "GarageDoor",
    "GarageLight",
    "GarageLock",
    "HttpCommandTransport",
    "HubRegistry",
    "LearnMode",
    "LockState",
    "MotionSensor",
    "ObstructionSensor",
    "PositionScale",
    "PreCloseWarning",
    "RawEvent",
    "StateRecord",
    "StreamEndpoint",
    "TargetDoorState",
    "format_mac",
]
