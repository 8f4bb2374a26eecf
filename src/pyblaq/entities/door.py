"""Garage door entity.

Merges structured ``cover-*`` records with log heuristics into a derived
door state. Precedence, most specific first:

1. pre-close warning active, operation ``CLOSING``, or target < position -> closing
2. operation ``OPENING``, or target > position -> opening
3. discrete state ``OPEN``, or position > 0 -> open
4. discrete state ``CLOSED``, or position <= 0 -> closed

Anything else is indeterminate and reading the state raises
:class:`~pyblaq.exceptions.BlaqIndeterminateStateError`.

Positions are on a 0-100 scale. Target writes update local state
optimistically; the next structured cover record is the source of truth.
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Any

from pyblaq._constants import (
    BINARY_SENSOR_PREFIX,
    BUTTON_PREFIX,
    COVER_IDS,
    DEFAULT_COVER_TYPE,
    DRY_CONTACT_PREFIX,
    LOCK_IDS,
    OBSTRUCTION_ID,
    POSITION_CLOSED,
    POSITION_OPEN,
    POSITION_UNKNOWN,
    PRE_CLOSE_GRACE_S,
)
from pyblaq._transport import CommandTransport
from pyblaq.entities.base import BaseEntity, binary_value
from pyblaq.exceptions import BlaqIndeterminateStateError, BlaqInvalidInputError
from pyblaq.ingestion.logs import DoorLogSignal, LogInterpreter, PositionScale
from pyblaq.models.events import StateRecord, parse_cover_record, round_half_up
from pyblaq.models.states import CoverOperation, CoverState, DoorState, LockState, TargetDoorState

_logger = logging.getLogger(__name__)


class GarageDoor(BaseEntity[DoorLogSignal]):
    """The door itself, plus its obstruction and lock sub-states."""

    name = "door"

    def __init__(
        self,
        *,
        api_base_url: str,
        transport: CommandTransport,
        log_interpreter: LogInterpreter[DoorLogSignal] | None = None,
        pre_close_grace: float = PRE_CLOSE_GRACE_S,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(
            api_base_url=api_base_url,
            transport=transport,
            log_interpreter=log_interpreter,
            logger=logger or _logger,
        )
        self._cover_state: CoverState | None = None
        self._operation: CoverOperation | None = None
        self._position: float | None = None
        self._target_position: float | None = None
        self._obstructed: bool | None = None
        self._pre_closing: bool | None = None
        self._lock_state = LockState.UNKNOWN
        self._cover_type = DEFAULT_COVER_TYPE
        self._pre_close_grace = pre_close_grace
        self._pre_close_timer: asyncio.TimerHandle | None = None
        self._log_scale: PositionScale = getattr(log_interpreter, "scale", PositionScale.PERCENT)

    # ------------------------------------------------------------------
    # Raw fields
    # ------------------------------------------------------------------

    @property
    def cover_state(self) -> CoverState | None:
        return self._cover_state

    @property
    def current_operation(self) -> CoverOperation | None:
        return self._operation

    @property
    def position(self) -> float | None:
        """Last known position, ``None`` when never reported."""
        return self._position

    @property
    def obstructed(self) -> bool | None:
        return self._obstructed

    @property
    def pre_closing(self) -> bool | None:
        return self._pre_closing

    @property
    def lock_state(self) -> LockState:
        return self._lock_state

    @property
    def cover_type(self) -> str:
        return self._cover_type

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    def _derive(self) -> DoorState | None:
        position, target = self._position, self._target_position
        heading_down = heading_up = False
        if position is not None and target is not None:
            heading_down = target < position
            heading_up = target > position
        if self._pre_closing or self._operation is CoverOperation.CLOSING or heading_down:
            return DoorState.CLOSING
        if self._operation is CoverOperation.OPENING or heading_up:
            return DoorState.OPENING
        if self._cover_state is CoverState.OPEN or (position is not None and position > 0):
            return DoorState.OPEN
        if self._cover_state is CoverState.CLOSED or (position is not None and position <= 0):
            return DoorState.CLOSED
        return None

    @property
    def current_door_state(self) -> DoorState:
        state = self._derive()
        if state is None:
            raise BlaqIndeterminateStateError("Invalid door state: nothing observed resolves it")
        return state

    @property
    def target_door_state(self) -> TargetDoorState:
        state = self.current_door_state
        if state in (DoorState.OPENING, DoorState.OPEN):
            return TargetDoorState.OPEN
        return TargetDoorState.CLOSED

    @property
    def current_position(self) -> float:
        """Position on 0-100; the midpoint when nothing is known.

        A door fed by a :attr:`~pyblaq.ingestion.logs.PositionScale.FRACTION`
        interpreter reports log-derived positions on 0-1 instead.
        """
        if self._position is not None:
            return self._position
        if self._cover_state is CoverState.OPEN:
            return POSITION_OPEN
        if self._cover_state is CoverState.CLOSED:
            return POSITION_CLOSED
        return POSITION_UNKNOWN

    @property
    def target_position(self) -> float:
        if self._target_position is not None:
            return self._target_position
        state = self._derive()
        if state in (DoorState.OPENING, DoorState.OPEN):
            return POSITION_OPEN
        if state in (DoorState.CLOSING, DoorState.CLOSED):
            return POSITION_CLOSED
        return self.current_position

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def set_target_door_state(self, target: TargetDoorState | str) -> bool:
        """Open or close the door. Returns whether the command went through."""
        try:
            desired = TargetDoorState(target.strip().lower() if isinstance(target, str) else target)
        except ValueError as exc:
            raise BlaqInvalidInputError(f"Invalid target door state: {target!r}") from exc

        if desired is TargetDoorState.OPEN:
            self._target_position = POSITION_OPEN
            action = "open"
        else:
            self._target_position = POSITION_CLOSED
            action = "close"
        self._logger.debug("[%s] target door state -> %s (derived %s)", self.name, desired, self._derive())
        return await self._commands.send("cover", self._cover_type, action)

    async def set_target_position(self, target: Any) -> bool:
        """Move the door to a 0-100 position.

        No command is sent when the rounded target equals the known
        position. Returns whether a command was sent and succeeded.
        """
        if isinstance(target, bool):
            raise BlaqInvalidInputError(f"Invalid target door position: {target!r}")
        try:
            number = float(target)
        except (TypeError, ValueError) as exc:
            raise BlaqInvalidInputError(f"Invalid target door position: {target!r}") from exc
        if math.isnan(number) or not POSITION_CLOSED <= number <= POSITION_OPEN:
            raise BlaqInvalidInputError(f"Invalid target door position: {target!r}")

        rounded = round_half_up(number)
        self._target_position = rounded
        position = self._position
        if position is not None:
            if rounded > position:
                self._operation = CoverOperation.OPENING
            elif rounded < position:
                self._operation = CoverOperation.CLOSING
        self._logger.debug("[%s] target position -> %s (derived %s)", self.name, rounded, self._derive())

        if position is not None and rounded == position:
            self._logger.debug("[%s] already at position %s; no command sent", self.name, rounded)
            return False
        return await self._commands.send(
            "cover",
            self._cover_type,
            "set",
            {"position": rounded / POSITION_OPEN},
        )

    # ------------------------------------------------------------------
    # Structured events
    # ------------------------------------------------------------------

    def _apply_state(self, record: StateRecord) -> None:
        if record.id in COVER_IDS:
            self._apply_cover(record)
        elif record.id == OBSTRUCTION_ID:
            obstructed = binary_value(record)
            if obstructed is None:
                self._logger.warning("[%s] unrecognized obstruction record: %r", self.name, record.raw)
            self._obstructed = obstructed
        elif record.id in LOCK_IDS:
            self._lock_state = LockState.from_controller(record.state)
            if self._lock_state is LockState.UNKNOWN:
                self._logger.warning("[%s] unrecognized lock state %r", self.name, record.state)
        elif record.id.startswith(BINARY_SENSOR_PREFIX):
            short_id = record.id.removeprefix(BINARY_SENSOR_PREFIX)
            kind = "Dry contact" if short_id.startswith(DRY_CONTACT_PREFIX) else "Sensor"
            self._logger.info('%s "%s" [%s] reports %s [%s].', kind, record.name, short_id, record.state, record.value)
        elif record.id.startswith(BUTTON_PREFIX):
            short_id = record.id.removeprefix(BUTTON_PREFIX)
            self._logger.info('Button "%s" [%s] reports that it exists.', record.name, short_id)
        else:
            self._logger.debug("[%s] discarding uninteresting state event: %s", self.name, record.id)

    def _apply_cover(self, record: StateRecord) -> None:
        cover = parse_cover_record(record)
        self._cover_type = record.slug

        if cover.state is not None:
            if cover.state is CoverState.UNKNOWN:
                self._logger.warning("[%s] unrecognized cover state %r", self.name, record.state)
                self._cover_state = None
            else:
                self._cover_state = cover.state

        if cover.current_operation is not None:
            if cover.current_operation is CoverOperation.UNKNOWN:
                self._logger.warning(
                    "[%s] unrecognized cover operation %r", self.name, record.get("current_operation")
                )
                self._operation = None
            else:
                self._operation = cover.current_operation

        if cover.position_percent is not None:
            self._position = cover.position_percent

        if self._operation is CoverOperation.IDLE and self._position is not None:
            self._target_position = self._position
        else:
            self._reconcile_target()

    # ------------------------------------------------------------------
    # Log heuristics
    # ------------------------------------------------------------------

    def _apply_log_signal(self, signal: DoorLogSignal) -> None:
        if signal.operation is not None:
            self._operation = signal.operation
        if signal.cover_state is not None:
            self._cover_state = signal.cover_state
        if signal.position is not None:
            self._position = self._log_position(signal.position)
        if signal.target_position is not None:
            self._target_position = self._log_position(signal.target_position)
        self._reconcile_target()
        if signal.locked is not None:
            self._lock_state = LockState.SECURED if signal.locked else LockState.UNSECURED
        if signal.obstructed is not None:
            self._obstructed = signal.obstructed
        if signal.pre_close_ms is not None:
            self._start_pre_close(signal.pre_close_ms)

    def _log_position(self, value: float) -> float:
        if self._log_scale is PositionScale.FRACTION:
            # Legacy door-state tracking keeps log positions as reported on 0-1.
            return value
        return round_half_up(value)

    def _reconcile_target(self) -> None:
        # A reported direction overrides a target left behind on the other side.
        if self._target_position is None or self._position is None:
            return
        if self._operation is CoverOperation.OPENING and self._target_position < self._position:
            self._target_position = POSITION_OPEN
        elif self._operation is CoverOperation.CLOSING and self._target_position > self._position:
            self._target_position = POSITION_CLOSED

    # ------------------------------------------------------------------
    # Pre-close warning timer
    # ------------------------------------------------------------------

    def _start_pre_close(self, duration_ms: int) -> None:
        self._pre_closing = True
        if self._pre_close_timer is not None:
            self._pre_close_timer.cancel()
            self._pre_close_timer = None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._logger.warning("[%s] no running event loop; pre-close warning will not clear itself", self.name)
            return
        delay = duration_ms / 1000 + self._pre_close_grace
        self._logger.debug("[%s] pre-close warning for %sms", self.name, duration_ms)
        self._pre_close_timer = loop.call_later(delay, self._end_pre_close)

    def _end_pre_close(self) -> None:
        self._pre_close_timer = None
        self._pre_closing = False
        self._logger.debug("[%s] pre-close warning over", self.name)

    def cancel_timers(self) -> None:
        if self._pre_close_timer is not None:
            self._pre_close_timer.cancel()
            self._pre_close_timer = None

    def as_dict(self) -> dict[str, Any]:
        data = super().as_dict()
        derived = self._derive()
        data.update(
            {
                "current_door_state": derived.value if derived is not None else None,
                "current_position": self.current_position,
                "target_position": self.target_position,
                "cover_state": self._cover_state.value if self._cover_state is not None else None,
                "current_operation": self._operation.value if self._operation is not None else None,
                "obstructed": self._obstructed,
                "pre_closing": self._pre_closing,
                "lock_state": self._lock_state.value,
            }
        )
        return data
