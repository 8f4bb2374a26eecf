"""Best-effort log line interpreters.

Matching is case-insensitive substring matching, not parsing. Each
interpreter returns ``None`` when a line says nothing about its capability.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import TypeVar

from pyblaq._constants import DEFAULT_PRE_CLOSE_WARNING_MS
from pyblaq.models.states import CoverOperation, CoverState

T = TypeVar("T")

LogInterpreter = Callable[[str], T | None]
"""Turns one log line into a capability signal, or ``None``."""

_POSITION_RE = re.compile(r"position[:=] ?([\d.]+%?)")
_TARGET_POSITION_RE = re.compile(r"to position[:=]? ?([\d.]+%?)")
_WARNING_RE = re.compile(r"warning for\s*(\d+)\s*ms")
_NON_NUMERIC = re.compile(r"[^\d.]+")


class PositionScale(StrEnum):
    """Scale a log-derived position is converted to.

    The controller writes positions either as a fraction (``0.42``) or as a
    percentage (``42`` / ``42%``). ``PERCENT`` converts both to 0-100 and the
    door rounds them, so log and cover positions share one scale.
    ``FRACTION`` converts both to 0-1 and the door stores them unrounded,
    the way the older door-state tracking did.
    """

    PERCENT = "percent"
    FRACTION = "fraction"


def parse_position(
    text: str,
    scale: PositionScale = PositionScale.PERCENT,
    *,
    pattern: re.Pattern[str] = _POSITION_RE,
) -> float | None:
    """Extract ``position[:=] <number>[%]`` from *text* on the requested scale.

    A number is treated as percent-like when it carries ``%`` or exceeds 1,
    otherwise as a fraction.
    """
    match = pattern.search(text.lower())
    if match is None:
        return None
    token = match.group(1)
    try:
        number = float(_NON_NUMERIC.sub("", token))
    except ValueError:
        return None
    percent_like = "%" in token or number > 1
    if scale is PositionScale.PERCENT:
        return number if percent_like else number * 100
    return number / 100 if percent_like else number


def parse_target_position(text: str, scale: PositionScale = PositionScale.PERCENT) -> float | None:
    """Extract the destination from a ``moving ... to position <number>`` line."""
    lowered = text.lower()
    if "moving" not in lowered or "to position" not in lowered:
        return None
    return parse_position(lowered, scale, pattern=_TARGET_POSITION_RE)


def parse_warning_duration_ms(text: str) -> int | None:
    """Return the announced pre-close warning duration.

    ``None`` when the line is not a warning announcement; the default
    duration when it is but carries no readable number.
    """
    lowered = text.lower()
    if "warning for " not in lowered:
        return None
    match = _WARNING_RE.search(lowered)
    if match is None:
        return DEFAULT_PRE_CLOSE_WARNING_MS
    return int(match.group(1))


def _state_switch(lowered: str, subject: str) -> bool | None:
    # Subjects such as "motion" and "obstruction" contain "on", so "off" is checked first.
    if subject not in lowered or "state" not in lowered:
        return None
    if "off" in lowered:
        return False
    if "on" in lowered:
        return True
    return None


# ---------------------------------------------------------------------------
# Door
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DoorLogSignal:
    """Everything a single log line can say about the door."""

    operation: CoverOperation | None = None
    cover_state: CoverState | None = None
    position: float | None = None
    target_position: float | None = None
    pre_close_ms: int | None = None
    locked: bool | None = None
    obstructed: bool | None = None

    @property
    def is_empty(self) -> bool:
        return self == _EMPTY_DOOR_SIGNAL


_EMPTY_DOOR_SIGNAL = DoorLogSignal()


class DoorLogInterpreter:
    """Door heuristics: operation, discrete state, position, warning, lock, obstruction."""

    def __init__(self, scale: PositionScale = PositionScale.PERCENT) -> None:
        self.scale = scale

    def __call__(self, text: str) -> DoorLogSignal | None:
        lowered = text.lower()

        operation: CoverOperation | None = None
        cover_state: CoverState | None = None
        if "door" in lowered and "state" in lowered:
            if "opening" in lowered:
                operation = CoverOperation.OPENING
            elif "closing" in lowered:
                operation = CoverOperation.CLOSING
            elif "open" in lowered:
                cover_state = CoverState.OPEN
            elif "closed" in lowered:
                cover_state = CoverState.CLOSED

        target_position = parse_target_position(lowered, self.scale)
        position = None if target_position is not None else parse_position(lowered, self.scale)

        signal = DoorLogSignal(
            operation=operation,
            cover_state=cover_state,
            position=position,
            target_position=target_position,
            pre_close_ms=parse_warning_duration_ms(lowered),
            locked=interpret_lock_log(lowered),
            obstructed=interpret_obstruction_log(lowered),
        )
        return None if signal.is_empty else signal


# ---------------------------------------------------------------------------
# Boolean capabilities
# ---------------------------------------------------------------------------


def interpret_lock_log(text: str) -> bool | None:
    """``True`` for a locked line, ``False`` for unlocked; no JAMMED/UNKNOWN."""
    lowered = text.lower()
    if "lock" not in lowered or "state" not in lowered:
        return None
    if "unlocked" in lowered:
        return False
    if "locked" in lowered:
        return True
    return None


def interpret_light_log(text: str) -> bool | None:
    return _state_switch(text.lower(), "light")


def interpret_motion_log(text: str) -> bool | None:
    return _state_switch(text.lower(), "motion")


def interpret_obstruction_log(text: str) -> bool | None:
    lowered = text.lower()
    if "obstruction" not in lowered:
        return None
    if "clear" in lowered:
        return False
    if "obstructed" in lowered:
        return True
    return _state_switch(lowered, "obstruction")


def interpret_learn_log(text: str) -> bool | None:
    lowered = text.lower()
    if "learn" not in lowered:
        return None
    if "turning" in lowered:
        if "off" in lowered:
            return False
        if "on" in lowered:
            return True
    return _state_switch(lowered, "learn")


def interpret_pre_close_warning_log(text: str) -> bool | None:
    lowered = text.lower()
    pre_close_pressed = all(word in lowered for word in ("pre", "close", "warning", "pressed"))
    play_sound_pressed = all(word in lowered for word in ("play", "sound", "pressed"))
    playing_song = "playing" in lowered and "song" in lowered
    if pre_close_pressed or play_sound_pressed or playing_song:
        return True
    if "playback" in lowered and "finished" in lowered:
        return False
    return None
