"""Per-entity sync gate.

The controller announces ``binary_sensor-synced = true`` once it has
finished talking to the door opener. Until then everything it says is
provisional, so entities defer events here and replay them in arrival
order the moment sync is reached. Firmware records bypass the gate.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from typing import Any

from pyblaq._constants import FIRMWARE_IDS, SYNCED_ID
from pyblaq.models.events import EventKind, StateRecord

_logger = logging.getLogger(__name__)

Replay = Callable[[EventKind, str], None]


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"true", "on", "1"}
    return bool(value)


class SyncGate:
    """Sync flag, deferred-event FIFO and firmware version for one entity."""

    def __init__(
        self,
        owner: str,
        replay: Replay,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._owner = owner
        self._replay = replay
        self._logger = logger or _logger
        self._queue: deque[tuple[EventKind, str]] = deque()
        self.synced = False
        self.firmware_version: str | None = None

    @property
    def pending(self) -> int:
        """Number of events waiting for sync."""
        return len(self._queue)

    def reset(self) -> None:
        """Go back to deferring events until the next sync signal."""
        self.synced = False

    def defer(self, kind: EventKind, payload: str) -> bool:
        """Queue the event if not yet synced. Returns whether it was queued."""
        if self.synced:
            return False
        self._queue.append((kind, payload))
        return True

    def intercept_state(self, record: StateRecord, payload: str) -> bool:
        """Consume sync and firmware records; defer anything else while unsynced.

        Returns ``True`` when the caller must not apply *record* itself.
        """
        if record.id == SYNCED_ID:
            self._set_synced(_as_bool(record.value))
            return True
        if record.id in FIRMWARE_IDS:
            self._apply_firmware(record)
            return True
        return self.defer(EventKind.STATE, payload)

    def _set_synced(self, synced: bool) -> None:
        was_synced = self.synced
        self.synced = synced
        if not synced:
            if was_synced:
                self._logger.info("[%s] device reports not synced; deferring events", self._owner)
            return
        if not was_synced:
            self._logger.debug("[%s] synced; replaying %d deferred event(s)", self._owner, len(self._queue))
        while self._queue and self.synced:
            kind, payload = self._queue.popleft()
            self._replay(kind, payload)

    def _apply_firmware(self, record: StateRecord) -> None:
        value, state = record.value, record.state
        if isinstance(value, str) and value and value == state:
            if value != self.firmware_version:
                self._logger.info("[%s] firmware version: %s", self._owner, value)
            self.firmware_version = value
            return
        self._logger.error("[%s] mismatched firmware versions in value/state: %r / %r", self._owner, value, state)
        self.firmware_version = None
