"""Custom exception hierarchy for pyblaq."""

from __future__ import annotations


class BlaqError(Exception):
    """Base exception for all pyblaq errors."""


class BlaqConfigError(BlaqError):
    """Invalid or missing configuration."""


class BlaqTransportError(BlaqError):
    """HTTP-level failure talking to the controller (network, non-2xx)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        url: str = "",
    ) -> None:
        self.status_code = status_code
        self.url = url
        super().__init__(message)


class BlaqPayloadError(BlaqError):
    """An event payload could not be decoded (bad JSON, missing ``id``)."""

    def __init__(
        self,
        message: str,
        *,
        kind: str = "",
        payload: str = "",
    ) -> None:
        self.kind = kind
        self.payload = payload
        super().__init__(message)


class BlaqIndeterminateStateError(BlaqError):
    """The door state cannot be resolved from what has been observed.

    Raised by the door getters instead of guessing a physical position.
    Consumers should surface this as "unknown" rather than retrying.
    """


class BlaqInvalidInputError(BlaqError, ValueError):
    """A write was rejected before any local mutation or outbound command."""
