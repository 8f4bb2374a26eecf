"""Shared entity surface.

Every logical capability of the controller (door, lock, light...) is an
entity. The hub only talks to entities through :class:`Entity`.
:class:`BaseEntity` wires the pieces each capability embeds: a
:class:`~pyblaq.entities._sync.SyncGate`, a
:class:`~pyblaq._transport.CommandIssuer` and an optional log interpreter.
Subclasses implement ``_apply_state`` and ``_apply_log_signal``.
"""

from __future__ import annotations

import logging
from typing import Any, Generic, Protocol, TypeVar, runtime_checkable

from pyblaq._transport import CommandIssuer, CommandTransport
from pyblaq.entities._sync import SyncGate
from pyblaq.exceptions import BlaqPayloadError
from pyblaq.ingestion.logs import LogInterpreter
from pyblaq.models.events import EventKind, PingInfo, RawEvent, StateRecord, parse_ping, parse_state_record

_logger = logging.getLogger(__name__)

SignalT = TypeVar("SignalT")


@runtime_checkable
class Entity(Protocol):
    """What the hub needs from an entity."""

    name: str

    def handle_event(self, event: RawEvent) -> None: ...

    def set_api_base_url(self, url: str) -> None: ...

    def reset_sync_state(self) -> None: ...

    def as_dict(self) -> dict[str, Any]: ...


def binary_value(record: StateRecord) -> bool | None:
    """Boolean carried by a binary-sensor-like record (``value`` first, then ``ON``/``OFF``)."""
    if isinstance(record.value, bool):
        return record.value
    state = record.state_upper
    if state == "ON":
        return True
    if state == "OFF":
        return False
    return None


class BaseEntity(Generic[SignalT]):
    """Event plumbing shared by all entities."""

    name: str = "entity"

    def __init__(
        self,
        *,
        api_base_url: str,
        transport: CommandTransport,
        log_interpreter: LogInterpreter[SignalT] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._logger = logger or _logger
        self._log_interpreter = log_interpreter
        self._commands = CommandIssuer(api_base_url, transport, logger=self._logger)
        self._gate = SyncGate(self.name, self._replay, logger=self._logger)
        self._logger.debug("Initialized %s", type(self).__name__)

    # ------------------------------------------------------------------
    # Sync state
    # ------------------------------------------------------------------

    @property
    def synced(self) -> bool:
        return self._gate.synced

    @property
    def pending_events(self) -> int:
        return self._gate.pending

    @property
    def firmware_version(self) -> str | None:
        return self._gate.firmware_version

    def reset_sync_state(self) -> None:
        self._gate.reset()

    @property
    def api_base_url(self) -> str:
        return self._commands.api_base_url

    def set_api_base_url(self, url: str) -> None:
        self._commands.set_api_base_url(url)

    # ------------------------------------------------------------------
    # Event entry points
    # ------------------------------------------------------------------

    def handle_event(self, event: RawEvent) -> None:
        self._replay(event.kind, event.payload)

    def _replay(self, kind: EventKind, payload: str) -> None:
        if kind is EventKind.STATE:
            self.handle_state_event(payload)
        elif kind is EventKind.LOG:
            self.handle_log_event(payload)
        else:
            self.handle_ping_event(payload)

    def handle_state_event(self, payload: str) -> None:
        try:
            record = parse_state_record(payload)
        except BlaqPayloadError as exc:
            self._logger.error("[%s] cannot deserialize state event %r: %s", self.name, payload, exc)
            return
        if self._gate.intercept_state(record, payload):
            return
        self._logger.debug("[%s] processing state event: %s", self.name, record.id)
        try:
            self._apply_state(record)
        except BlaqPayloadError as exc:
            self._logger.error("[%s] discarding state event %s: %s", self.name, record.id, exc)

    def handle_log_event(self, text: str) -> None:
        if self._gate.defer(EventKind.LOG, text):
            return
        if self._log_interpreter is None:
            return
        try:
            signal = self._log_interpreter(text)
        except Exception:
            self._logger.exception("[%s] log parsing error for %r", self.name, text)
            return
        if signal is not None:
            self._logger.debug("[%s] log %r -> %s", self.name, text, signal)
            self._apply_log_signal(signal)

    def handle_ping_event(self, payload: str) -> None:
        if self._gate.defer(EventKind.PING, payload):
            return
        try:
            ping = parse_ping(payload)
        except BlaqPayloadError as exc:
            self._logger.error("[%s] cannot deserialize ping event %r: %s", self.name, payload, exc)
            return
        self._apply_ping(ping)

    # ------------------------------------------------------------------
    # Capability hooks
    # ------------------------------------------------------------------

    def _apply_state(self, record: StateRecord) -> None:
        raise NotImplementedError

    def _apply_log_signal(self, signal: SignalT) -> None:
        raise NotImplementedError

    def _apply_ping(self, ping: PingInfo | None) -> None:
        """Pings carry nothing most entities act on."""

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "synced": self.synced,
            "firmware_version": self.firmware_version,
        }


class BooleanEntity(BaseEntity[bool]):
    """An entity that mirrors one on/off value from a fixed set of record ids."""

    record_ids: frozenset[str] = frozenset()

    def __init__(
        self,
        *,
        api_base_url: str,
        transport: CommandTransport,
        log_interpreter: LogInterpreter[bool] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(
            api_base_url=api_base_url,
            transport=transport,
            log_interpreter=log_interpreter,
            logger=logger,
        )
        self._is_on: bool | None = None

    @property
    def is_on(self) -> bool | None:
        """Mirrored value, ``None`` until first reported."""
        return self._is_on

    def _apply_state(self, record: StateRecord) -> None:
        if record.id not in self.record_ids:
            return
        value = binary_value(record)
        if value is None:
            self._logger.warning("[%s] unrecognized %s state %r", self.name, record.id, record.state)
            return
        self._on_record(record)
        self._is_on = value

    def _on_record(self, record: StateRecord) -> None:
        """Hook for entities that track the reporting slug."""

    def _apply_log_signal(self, signal: bool) -> None:
        self._is_on = signal

    def as_dict(self) -> dict[str, Any]:
        data = super().as_dict()
        data["is_on"] = self._is_on
        return data
