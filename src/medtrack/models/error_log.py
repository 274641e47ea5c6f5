"""Diagnostic error log records."""

from __future__ import annotations

from typing import Any

from pydantic import field_validator

from medtrack.models._base import MedtrackModel


class ErrorDetails(MedtrackModel):
    """Normalized view of whatever was raised or returned as an error."""

    message: str
    stack: str | None = None
    code: str | None = None
    details: Any = None
    hint: str | None = None

    @field_validator("stack", "code", "hint", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str | None:
        if value is None or value == "":
            return None
        return str(value)


class ErrorLogEntry(MedtrackModel):
    """One recorded failure."""

    timestamp: str
    """ISO-8601 UTC time the entry was built."""
    context: str
    """Where the failure happened (e.g. ``"onboarding.save_profile"``)."""
    error: ErrorDetails
    metadata: Any = None
