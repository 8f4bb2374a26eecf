"""Typed event envelope for the controller's event stream.

The stream carries three named event types:

* ``log`` - an opaque, human-readable line.
* ``state`` - a JSON object keyed by a compound ``id`` (``<category>-<slug>``).
* ``ping`` - a JSON object carrying the device title, or an empty string.

:class:`RawEvent` is what the stream client hands to the hub. Payloads are
decoded lazily with :func:`parse_state_record` and :func:`parse_ping` so a
malformed event can be logged and dropped by whoever consumes it.
"""

from __future__ import annotations

import json
import math
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from pyblaq.exceptions import BlaqPayloadError
from pyblaq.models._base import BlaqBaseModel
from pyblaq.models.states import CoverOperation, CoverState


def round_half_up(value: float) -> int:
    """Round to the nearest integer with ties going up (``12.5`` -> ``13``)."""
    return math.floor(value + 0.5)


class EventKind(StrEnum):
    LOG = "log"
    STATE = "state"
    PING = "ping"


class RawEvent(BaseModel):
    """A single event as received from the stream, in arrival order."""

    model_config = ConfigDict(frozen=True)

    kind: EventKind
    payload: str = ""
    received_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("received_at")
    @classmethod
    def _ensure_tz_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


class StateRecord(BlaqBaseModel):
    """Structured state record decoded from a ``state`` event.

    Capability-specific fields (``position``, ``current_operation``...) are
    kept as extras and reachable through :meth:`get`.
    """

    id: str
    value: Any = None
    state: Any = None
    name: str | None = None

    @field_validator("id")
    @classmethod
    def _normalize_id(cls, value: str) -> str:
        record_id = value.strip()
        if not record_id:
            raise ValueError("id must be non-empty")
        return record_id

    @property
    def category(self) -> str:
        return self.id.split("-", 1)[0]

    @property
    def slug(self) -> str:
        _, _, slug = self.id.partition("-")
        return slug

    def get(self, key: str, default: Any = None) -> Any:
        """Return a capability-specific field from the original payload."""
        return self.raw.get(key, default)

    @property
    def state_upper(self) -> str:
        """``state`` as an uppercase string, empty when absent."""
        return self.state.strip().upper() if isinstance(self.state, str) else ""


class CoverRecord(BlaqBaseModel):
    """``cover-*`` payload: discrete state, live operation and position fraction."""

    id: str
    state: CoverState | None = None
    current_operation: CoverOperation | None = None
    position: float | None = None

    @property
    def position_percent(self) -> int | None:
        """Position on the 0-100 scale, rounded."""
        if self.position is None:
            return None
        return round_half_up(self.position * 100)


class PingInfo(BlaqBaseModel):
    """Heartbeat payload; ``title`` is the device's friendly name."""

    title: str | None = None
    comment: str | None = None
    ota: bool | None = None
    log: bool | None = None
    lang: str | None = None


def _load_object(payload: str, kind: EventKind) -> dict[str, Any]:
    try:
        decoded = json.loads(payload)
    except (TypeError, json.JSONDecodeError) as exc:
        raise BlaqPayloadError(
            f"Invalid JSON in {kind} event: {exc}",
            kind=kind,
            payload=payload,
        ) from exc
    if not isinstance(decoded, dict):
        raise BlaqPayloadError(
            f"{kind} event decoded to non-object JSON",
            kind=kind,
            payload=payload,
        )
    return decoded


def parse_state_record(payload: str) -> StateRecord:
    """Decode a ``state`` event payload.

    Raises
    ------
    BlaqPayloadError
        If the payload is not a JSON object with a non-empty ``id``.
    """
    decoded = _load_object(payload, EventKind.STATE)
    try:
        return StateRecord.model_validate(decoded)
    except ValidationError as exc:
        raise BlaqPayloadError(
            f"state event is missing a valid id: {exc.error_count()} error(s)",
            kind=EventKind.STATE,
            payload=payload,
        ) from exc


def parse_cover_record(record: StateRecord) -> CoverRecord:
    """Project a generic state record onto the cover payload shape."""
    try:
        return CoverRecord.model_validate(record.raw)
    except ValidationError as exc:
        raise BlaqPayloadError(
            f"cover event {record.id} has unusable fields: {exc.error_count()} error(s)",
            kind=EventKind.STATE,
            payload=json.dumps(record.raw),
        ) from exc


def parse_ping(payload: str) -> PingInfo | None:
    """Decode a ``ping`` event payload.

    An empty payload means the device has no identity information yet and
    yields ``None``.
    """
    if not payload or not payload.strip():
        return None
    decoded = _load_object(payload, EventKind.PING)
    try:
        return PingInfo.model_validate(decoded)
    except ValidationError as exc:
        raise BlaqPayloadError(
            f"ping event has unusable fields: {exc.error_count()} error(s)",
            kind=EventKind.PING,
            payload=payload,
        ) from exc
