"""Switchable entities: garage light, pre-close warning and learn mode.

Setters update the mirrored value optimistically and only talk to the
controller when the requested value differs from the known one.
"""

from __future__ import annotations

from pyblaq._constants import DEFAULT_LIGHT_TYPE, LEARN_ID, LIGHT_IDS, PRE_CLOSE_WARNING_ID
from pyblaq.entities.base import BooleanEntity
from pyblaq.models.events import StateRecord


class GarageLight(BooleanEntity):
    name = "light"
    record_ids = LIGHT_IDS

    _light_type = DEFAULT_LIGHT_TYPE

    @property
    def light_type(self) -> str:
        return self._light_type

    def _on_record(self, record: StateRecord) -> None:
        self._light_type = record.slug

    async def set_on(self, on: bool) -> bool:
        """Turn the light on or off. Returns whether a command was sent and succeeded."""
        changed = on != self._is_on
        self._is_on = on
        if not changed:
            return False
        action = "turn_on" if on else "turn_off"
        return await self._commands.send("light", self._light_type, action)


class PreCloseWarning(BooleanEntity):
    """The controller's pre-close beeper, exposed as a momentary switch."""

    name = "pre_close_warning"
    record_ids = frozenset({PRE_CLOSE_WARNING_ID})

    async def set_on(self, on: bool) -> bool:
        """Press the warning button. Turning it off is local only."""
        press = on and not self._is_on
        self._is_on = on
        if not press:
            return False
        category, _, slug = PRE_CLOSE_WARNING_ID.partition("-")
        return await self._commands.send(category, slug, "press")


class LearnMode(BooleanEntity):
    """Remote pairing ("learn") mode of the door opener."""

    name = "learn_mode"
    record_ids = frozenset({LEARN_ID})

    async def set_on(self, on: bool) -> bool:
        changed = on != self._is_on
        self._is_on = on
        if not changed:
            return False
        category, _, slug = LEARN_ID.partition("-")
        return await self._commands.send(category, slug, "turn_on" if on else "turn_off")
