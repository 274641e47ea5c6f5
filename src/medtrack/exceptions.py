"""Custom exception hierarchy for medtrack."""

from __future__ import annotations


class MedtrackError(Exception):
    """Base exception for all medtrack errors."""


class MedtrackConfigError(MedtrackError):
    """Invalid or missing configuration."""


class MedtrackTransportError(MedtrackError):
    """HTTP-level failure (network, non-200, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class MalformedPayloadError(MedtrackError):
    """Remote or persisted payload failed shape validation.

    Never partially accepted: the resolver treats it exactly like a
    transport failure and moves on to the next tier.
    """


class StorageError(MedtrackError):
    """Key-value store read or write failed."""

    def __init__(self, message: str, *, key: str = "") -> None:
        self.key = key
        super().__init__(message)


class FallbackExhaustedError(MedtrackError):
    """The compiled-in fallback supplier itself failed.

    This signals a packaging defect rather than a runtime condition and
    is the only error :class:`~medtrack.cache.ConfigCache` lets escape.
    """
