"""Read-only binary sensors exposed as their own entities."""

from __future__ import annotations

from pyblaq._constants import MOTION_ID, OBSTRUCTION_ID
from pyblaq.entities.base import BooleanEntity


class MotionSensor(BooleanEntity):
    name = "motion"
    record_ids = frozenset({MOTION_ID})

    @property
    def motion_detected(self) -> bool:
        return bool(self._is_on)


class ObstructionSensor(BooleanEntity):
    name = "obstruction"
    record_ids = frozenset({OBSTRUCTION_ID})

    @property
    def obstruction_detected(self) -> bool:
        if self._is_on is None:
            self._logger.debug("[%s] no obstruction status has been received yet", self.name)
        return bool(self._is_on)
