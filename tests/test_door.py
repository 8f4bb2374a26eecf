from __future__ import annotations

import asyncio
import json
import math
from typing import Any

import pytest

from pyblaq.entities import GarageDoor
from pyblaq.exceptions import BlaqIndeterminateStateError, BlaqInvalidInputError, BlaqTransportError
from pyblaq.ingestion.logs import DoorLogInterpreter, PositionScale
from pyblaq.models import CoverOperation, DoorState, LockState, TargetDoorState

_BASE = "http://gdo.local:80"


class _Transport:
    def __init__(self, *, fail: bool = False) -> None:
        self.urls: list[str] = []
        self.fail = fail

    async def post(self, url: str) -> None:
        self.urls.append(url)
        if self.fail:
            raise BlaqTransportError("connection refused", url=url)


def _state(record_id: str, **fields: Any) -> str:
    return json.dumps({"id": record_id, **fields})


def _door(transport: _Transport | None = None, *, synced: bool = True, **kwargs: Any) -> GarageDoor:
    kwargs.setdefault("log_interpreter", DoorLogInterpreter())
    door = GarageDoor(api_base_url=_BASE, transport=transport or _Transport(), **kwargs)
    if synced:
        door.handle_state_event(_state("binary_sensor-synced", value=True))
    return door


def _cover(door: GarageDoor, **fields: Any) -> None:
    door.handle_state_event(_state("cover-garage_door", **fields))


def test_nothing_known_is_indeterminate() -> None:
    door = _door()

    with pytest.raises(BlaqIndeterminateStateError):
        _ = door.current_door_state
    assert door.current_position == 50
    assert door.as_dict()["current_door_state"] is None


@pytest.mark.parametrize(
    ("fields", "expected", "position"),
    [
        ({"state": "OPEN", "position": 1.0, "current_operation": "IDLE"}, DoorState.OPEN, 100),
        ({"state": "CLOSED", "position": 0.0, "current_operation": "IDLE"}, DoorState.CLOSED, 0),
        ({"state": "OPEN", "position": 0.6, "current_operation": "CLOSING"}, DoorState.CLOSING, 60),
        ({"state": "OPEN", "position": 0.2, "current_operation": "OPENING"}, DoorState.OPENING, 20),
        ({"state": "OPEN"}, DoorState.OPEN, 100),
        ({"state": "CLOSED"}, DoorState.CLOSED, 0),
    ],
)
def test_cover_records_drive_door_state(fields: dict[str, Any], expected: DoorState, position: int) -> None:
    door = _door()
    _cover(door, **fields)

    assert door.current_door_state is expected
    assert door.current_position == position


def test_partial_position_without_state_is_open() -> None:
    door = _door()
    _cover(door, position=0.3)
    assert door.current_door_state is DoorState.OPEN
    assert door.target_door_state is TargetDoorState.OPEN


def test_idle_cover_snaps_target_to_position() -> None:
    door = _door()
    _cover(door, state="OPEN", position=1.0, current_operation="OPENING")
    _cover(door, current_operation="IDLE", position=0.55)

    assert door.target_position == 55
    assert door.current_door_state is DoorState.OPEN


@pytest.mark.asyncio
async def test_set_target_position_is_optimistic() -> None:
    transport = _Transport()
    door = _door(transport)
    _cover(door, state="OPEN", position=1.0, current_operation="IDLE")

    assert await door.set_target_position(30) is True

    assert transport.urls == [f"{_BASE}/cover/garage_door/set?position=0.3"]
    assert door.current_operation is CoverOperation.CLOSING
    assert door.target_position == 30
    assert door.current_door_state is DoorState.CLOSING

    # The device confirms the stop.
    _cover(door, state="OPEN", position=0.3, current_operation="IDLE")
    assert door.current_door_state is DoorState.OPEN
    assert door.current_position == 30


@pytest.mark.asyncio
async def test_set_target_position_rounds() -> None:
    transport = _Transport()
    door = _door(transport)
    _cover(door, state="CLOSED", position=0.0, current_operation="IDLE")

    await door.set_target_position("42.6")

    assert transport.urls == [f"{_BASE}/cover/garage_door/set?position=0.43"]
    assert door.current_door_state is DoorState.OPENING


@pytest.mark.asyncio
async def test_set_target_position_rounds_ties_up() -> None:
    transport = _Transport()
    door = _door(transport)
    _cover(door, state="OPEN", position=0.5, current_operation="IDLE")

    assert await door.set_target_position(50.5) is True

    assert transport.urls == [f"{_BASE}/cover/garage_door/set?position=0.51"]
    assert door.target_position == 51
    assert door.current_door_state is DoorState.OPENING


@pytest.mark.asyncio
async def test_set_target_position_to_current_sends_nothing() -> None:
    transport = _Transport()
    door = _door(transport)
    _cover(door, state="OPEN", position=1.0, current_operation="IDLE")

    assert await door.set_target_position(100) is False
    assert await door.set_target_position(99.6) is False
    assert transport.urls == []
    assert door.current_door_state is DoorState.OPEN


@pytest.mark.asyncio
@pytest.mark.parametrize("bad", ["abc", None, True, [50], -1, 101, math.nan])
async def test_set_target_position_rejects_bad_input(bad: Any) -> None:
    transport = _Transport()
    door = _door(transport)

    with pytest.raises(BlaqInvalidInputError):
        await door.set_target_position(bad)
    assert transport.urls == []


@pytest.mark.asyncio
async def test_invalid_input_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        await _door().set_target_position("half")


@pytest.mark.asyncio
async def test_set_target_door_state_sends_open_and_close() -> None:
    transport = _Transport()
    door = _door(transport)
    _cover(door, state="CLOSED", position=0.0, current_operation="IDLE")

    assert await door.set_target_door_state("OPEN") is True
    assert door.target_position == 100
    assert door.current_door_state is DoorState.OPENING

    assert await door.set_target_door_state(TargetDoorState.CLOSED) is True
    assert transport.urls == [
        f"{_BASE}/cover/garage_door/open",
        f"{_BASE}/cover/garage_door/close",
    ]


@pytest.mark.asyncio
async def test_set_target_door_state_rejects_unknown_value() -> None:
    with pytest.raises(BlaqInvalidInputError):
        await _door().set_target_door_state("ajar")


@pytest.mark.asyncio
async def test_cover_type_follows_reporting_record() -> None:
    transport = _Transport()
    door = _door(transport)
    door.handle_state_event(_state("cover-door", state="OPEN", position=1.0, current_operation="IDLE"))

    await door.set_target_door_state("closed")

    assert door.cover_type == "door"
    assert transport.urls == [f"{_BASE}/cover/door/close"]


@pytest.mark.asyncio
async def test_failed_command_keeps_optimistic_state() -> None:
    transport = _Transport(fail=True)
    door = _door(transport)
    _cover(door, state="OPEN", position=1.0, current_operation="IDLE")

    assert await door.set_target_position(10) is False
    assert door.target_position == 10
    assert len(transport.urls) == 1


@pytest.mark.asyncio
async def test_new_api_base_url_is_used_for_commands() -> None:
    transport = _Transport()
    door = _door(transport)
    door.set_api_base_url("10.0.0.9:8080/")

    await door.set_target_door_state("open")

    assert door.api_base_url == "http://10.0.0.9:8080"
    assert transport.urls == ["http://10.0.0.9:8080/cover/garage_door/open"]


def test_malformed_events_leave_state_unchanged() -> None:
    door = _door()
    _cover(door, state="OPEN", position=0.8, current_operation="IDLE")
    before = door.as_dict()

    door.handle_state_event("{not json")
    door.handle_state_event('{"state": "CLOSED"}')
    door.handle_state_event('["cover-garage_door"]')
    door.handle_state_event(_state("cover-garage_door", position="halfway"))

    assert door.as_dict() == before


def test_events_before_sync_are_deferred() -> None:
    door = _door(synced=False)
    _cover(door, state="OPEN", position=1.0, current_operation="IDLE")
    door.handle_log_event("Door state: CLOSING")

    assert door.pending_events == 2
    with pytest.raises(BlaqIndeterminateStateError):
        _ = door.current_door_state

    door.handle_state_event(_state("binary_sensor-synced", value=True))

    assert door.pending_events == 0
    assert door.current_door_state is DoorState.CLOSING


def test_lock_and_obstruction_sub_states() -> None:
    door = _door()
    assert door.lock_state is LockState.UNKNOWN

    door.handle_state_event(_state("lock-lock", state="LOCKED"))
    door.handle_state_event(_state("binary_sensor-obstruction", value=True, state="ON"))
    assert door.lock_state is LockState.SECURED
    assert door.obstructed is True

    door.handle_state_event(_state("lock-lock_remotes", state="UNLOCKED"))
    door.handle_state_event(_state("binary_sensor-obstruction", state="OFF"))
    assert door.lock_state is LockState.UNSECURED
    assert door.obstructed is False


def test_unrelated_records_are_ignored() -> None:
    door = _door()
    before = door.as_dict()
    door.handle_state_event(_state("binary_sensor-dry_contact_open", name="Open contact", state="ON", value=True))
    door.handle_state_event(_state("button-restart", name="Restart"))
    door.handle_state_event(_state("sensor-wifi_signal", value=-60))
    assert door.as_dict() == before


def test_unknown_cover_vocabulary_is_dropped() -> None:
    door = _door()
    _cover(door, state="OPEN", current_operation="IDLE")
    _cover(door, state="HALF", current_operation="WOBBLING")

    assert door.cover_state is None
    assert door.current_operation is None


# ---------------------------------------------------------------------------
# Log heuristics
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("line", "expected"),
    [
        ("Door state: OPENING", DoorState.OPENING),
        ("Door state: CLOSING", DoorState.CLOSING),
        ("Door state: OPEN", DoorState.OPEN),
        ("Door state: CLOSED", DoorState.CLOSED),
    ],
)
def test_door_state_log_lines(line: str, expected: DoorState) -> None:
    door = _door()
    door.handle_log_event(line)
    assert door.current_door_state is expected


def test_state_log_overrides_idle_cover() -> None:
    door = _door()
    _cover(door, state="CLOSED", position=0.0, current_operation="IDLE")
    door.handle_log_event("Door state: OPENING")
    assert door.current_door_state is DoorState.OPENING


def test_target_position_log_sets_direction() -> None:
    door = _door()
    _cover(door, state="OPEN", position=1.0, current_operation="IDLE")

    door.handle_log_event("Door moving to position 25%")

    assert door.target_position == 25
    assert door.current_door_state is DoorState.CLOSING


def test_opening_log_overrides_stale_lower_target() -> None:
    door = _door()
    _cover(door, state="OPEN", position=0.5, current_operation="IDLE")
    door.handle_log_event("Door moving to position 20%")
    assert door.current_door_state is DoorState.CLOSING

    door.handle_log_event("Door state: OPENING")

    assert door.target_position == 100
    assert door.current_door_state is DoorState.OPENING


@pytest.mark.parametrize(
    ("scale", "expected"),
    [(PositionScale.PERCENT, 42), (PositionScale.FRACTION, pytest.approx(0.42))],
)
@pytest.mark.parametrize("line", ["Position: 0.42", "Position: 42%", "position=42"])
def test_position_log_follows_interpreter_scale(scale: PositionScale, expected: Any, line: str) -> None:
    door = _door(log_interpreter=DoorLogInterpreter(scale))
    door.handle_log_event(line)
    assert door.position == expected


def test_position_scales_track_logs_differently() -> None:
    percent = _door(log_interpreter=DoorLogInterpreter(PositionScale.PERCENT))
    fraction = _door(log_interpreter=DoorLogInterpreter(PositionScale.FRACTION))
    for door in (percent, fraction):
        door.handle_log_event("Position: 42.5%")

    # Percent tracking rounds half up; fraction tracking keeps the raw 0-1 value.
    assert percent.position == 43
    assert fraction.position == pytest.approx(0.425)
    assert percent.position != fraction.position


def test_logs_ignored_without_interpreter() -> None:
    door = _door(log_interpreter=None)
    door.handle_log_event("Door state: OPENING")
    assert door.current_operation is None


def test_log_lock_and_obstruction() -> None:
    door = _door()
    door.handle_log_event("Lock state: LOCKED")
    door.handle_log_event("Obstruction: obstructed")
    assert door.lock_state is LockState.SECURED
    assert door.obstructed is True


@pytest.mark.asyncio
async def test_pre_close_warning_reports_closing_until_timer_expires() -> None:
    door = _door(pre_close_grace=0.0)
    _cover(door, state="OPEN", position=1.0, current_operation="IDLE")

    door.handle_log_event("Pre-close warning for 20ms")

    assert door.pre_closing is True
    assert door.current_door_state is DoorState.CLOSING
    await asyncio.sleep(0.1)
    assert door.pre_closing is False
    assert door.current_door_state is DoorState.OPEN


@pytest.mark.asyncio
async def test_pre_close_warning_timer_is_rearmed() -> None:
    door = _door(pre_close_grace=0.0)
    _cover(door, state="OPEN", position=1.0, current_operation="IDLE")

    door.handle_log_event("Pre-close warning for 100ms")
    await asyncio.sleep(0.06)
    door.handle_log_event("Pre-close warning for 100ms")
    await asyncio.sleep(0.06)
    # The first timer would have expired by now.
    assert door.pre_closing is True

    door.cancel_timers()
    assert door.pre_closing is True
