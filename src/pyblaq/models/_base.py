"""Base model and enum for controller payloads.

Every controller payload model inherits from :class:`BlaqBaseModel`
which provides:

* ``extra="allow"`` so capability-specific fields survive parsing.
* A ``model_validator(mode="before")`` that drops ``None`` values and
  blank strings so the field default is used.
* A ``raw`` dict that captures the original payload.

Vocabulary enums inherit from :class:`BlaqEnum` which adds an ``UNKNOWN``
member and a ``_missing_`` hook that matches case-insensitively and
returns ``UNKNOWN`` for any value without a mapped member.
"""

from __future__ import annotations

import enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class BlaqEnum(enum.StrEnum):
    """Base for controller vocabulary enums.

    Every subclass **must** define ``UNKNOWN``.
    """

    @classmethod
    def _missing_(cls, value: object) -> BlaqEnum:
        if isinstance(value, str):
            normalized = value.strip().upper()
            for member in cls:
                if member.value == normalized:
                    return member
        # noinspection PyUnresolvedReferences
        # pylint: disable=no-member
        if hasattr(cls, "UNKNOWN"):
            unknown: BlaqEnum = cls.UNKNOWN  # type: ignore[attr-defined]
            return unknown
        return next(iter(cls))


class BlaqBaseModel(BaseModel):
    """Base for controller payload models."""

    model_config = ConfigDict(
        frozen=True,
        extra="allow",
        populate_by_name=True,
    )

    raw: dict[str, Any] = Field(default_factory=dict, exclude=True)
    """Original payload dict."""

    @model_validator(mode="before")
    @classmethod
    def _clean_values(cls, values: Any) -> Any:
        """Drop empty placeholders and stash the raw payload."""
        if not isinstance(values, dict):
            return values
        original = dict(values)
        cleaned: dict[str, Any] = {}
        for key, value in original.items():
            if value is None:
                continue
            if isinstance(value, str) and not value.strip():
                continue
            cleaned[key] = value
        if "raw" not in values:
            cleaned["raw"] = original
        return cleaned
