"""Entity state machines, one per logical capability of the controller."""

from pyblaq.entities.base import BaseEntity, BooleanEntity, Entity
from pyblaq.entities.door import GarageDoor
from pyblaq.entities.lock import GarageLock
from pyblaq.entities.sensors import MotionSensor, ObstructionSensor
from pyblaq.entities.toggles import GarageLight, LearnMode, PreCloseWarning

__all__ = [
    "BaseEntity",
    "BooleanEntity",
    "Entity",
    "GarageDoor",
    "GarageLight",
    "GarageLock",
    "LearnMode",
    "MotionSensor",
    "ObstructionSensor",
    "PreCloseWarning",
]
