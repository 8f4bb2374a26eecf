"""Device identity resolved from the event stream."""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict

from pyblaq._constants import FRIENDLY_NAME_PREFIX

_NON_HEX = re.compile(r"[^A-F0-9]")


def format_mac(value: str | None) -> str | None:
    """Normalize a MAC address to uppercase colon-separated hex pairs.

    Non-hex characters are stripped before grouping, so ``"aa-bb-cc"``,
    ``"aabbcc"`` and ``"AA:BB:CC"`` all become ``"AA:BB:CC"``. A trailing
    odd nibble is dropped. Returns ``None`` when nothing hex-like remains.
    """
    if not value:
        return None
    digits = _NON_HEX.sub("", value.upper())
    pairs = [digits[i : i + 2] for i in range(0, len(digits) - 1, 2)]
    if not pairs:
        return None
    return ":".join(pairs)


class DeviceIdentity(BaseModel):
    """Identity of one physical controller.

    ``friendly_name`` comes from the ping title and ``device_mac`` from the
    ``text_sensor-device_id`` record. Both are needed before any entity is
    created.
    """

    model_config = ConfigDict(frozen=True)

    friendly_name: str | None = None
    device_mac: str | None = None

    @property
    def is_complete(self) -> bool:
        return bool(self.friendly_name) and bool(self.device_mac)

    @property
    def model(self) -> str:
        """Model name embedded in the friendly name (``GDO blaQ 6084d8`` -> ``blaQ``)."""
        words = self._title_words()
        return words[0] if words else "Unknown"

    @property
    def serial_number(self) -> str:
        """Serial suffix embedded in the friendly name (``GDO blaQ 6084d8`` -> ``6084d8``)."""
        words = self._title_words()
        return words[-1] if words else "Unknown"

    def _title_words(self) -> list[str]:
        title = self.friendly_name or ""
        if title.startswith(FRIENDLY_NAME_PREFIX):
            title = title[len(FRIENDLY_NAME_PREFIX) :]
        return title.split()
