"""Dedicated lock entity (the opener's remote lockout)."""

from __future__ import annotations

import logging
from typing import Any

from pyblaq._constants import DEFAULT_LOCK_TYPE, LOCK_IDS
from pyblaq._transport import CommandTransport
from pyblaq.entities.base import BaseEntity
from pyblaq.ingestion.logs import LogInterpreter
from pyblaq.models.events import StateRecord
from pyblaq.models.states import LockState

_logger = logging.getLogger(__name__)


class GarageLock(BaseEntity[bool]):
    name = "lock"

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
            logger=logger or _logger,
        )
        self._lock_state = LockState.UNKNOWN
        self._target_locked: bool | None = None
        self._lock_type = DEFAULT_LOCK_TYPE

    @property
    def lock_state(self) -> LockState:
        return self._lock_state

    @property
    def is_locked(self) -> bool | None:
        if self._lock_state is LockState.SECURED:
            return True
        if self._lock_state is LockState.UNSECURED:
            return False
        return None

    @property
    def target_lock_state(self) -> LockState:
        """Last requested state, or the current one when nothing is pending."""
        if self._target_locked is None:
            return self._lock_state
        return LockState.SECURED if self._target_locked else LockState.UNSECURED

    @property
    def lock_type(self) -> str:
        return self._lock_type

    async def set_target_lock_state(self, locked: bool) -> bool:
        """Lock or unlock. Returns whether a command was sent and succeeded."""
        self._target_locked = locked
        if locked == self.is_locked:
            return False
        return await self._commands.send("lock", self._lock_type, "lock" if locked else "unlock")

    def _apply_state(self, record: StateRecord) -> None:
        if record.id not in LOCK_IDS:
            return
        self._lock_type = record.slug
        self._lock_state = LockState.from_controller(record.state)
        if self._lock_state is LockState.UNKNOWN:
            self._logger.warning("[%s] unrecognized lock state %r", self.name, record.state)
        self._target_locked = None

    def _apply_log_signal(self, signal: bool) -> None:
        self._lock_state = LockState.SECURED if signal else LockState.UNSECURED

    def as_dict(self) -> dict[str, Any]:
        data = super().as_dict()
        data.update(
            {
                "lock_state": self._lock_state.value,
                "target_lock_state": self.target_lock_state.value,
            }
        )
        return data
