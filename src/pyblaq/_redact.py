"""Credential masking for debug logs."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

_CREDENTIAL_KEYS = frozenset({"username", "password", "authorization"})


def redact_for_log(values: Mapping[str, Any]) -> dict[str, Any]:
    """Copy of *values* with non-empty credentials masked, nested mappings included."""
    masked: dict[str, Any] = {}
    for key, value in values.items():
        if isinstance(value, Mapping):
            masked[key] = redact_for_log(value)
        elif key.lower() in _CREDENTIAL_KEYS and value:
            masked[key] = "<redacted>"
        else:
            masked[key] = value
    return masked
