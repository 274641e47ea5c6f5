"""Medication catalog models."""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from typing import Any

from pydantic import Field, field_validator

from medtrack.models._base import MedtrackModel


class DoseUnit(StrEnum):
    MG = "mg"
    ML = "mL"


class DoseFrequency(StrEnum):
    WEEKLY = "weekly"
    DAILY = "daily"


class MedicationConfig(MedtrackModel):
    """A medication the user can pick for their regimen."""

    id: str = Field(min_length=1)
    """Stable identifier (e.g. ``"mounjaro"``)."""
    name: str = Field(min_length=1)
    """Brand name (e.g. ``"Mounjaro"``)."""
    generic_name: str
    """Active ingredient (e.g. ``"Tirzepatida"``)."""
    available_doses: tuple[float, ...]
    """Selectable doses in ascending order, all positive."""
    unit: DoseUnit
    frequency: DoseFrequency
    featured: bool
    """Highlighted during onboarding."""
    enabled: bool

    @field_validator("available_doses")
    @classmethod
    def _check_doses(cls, value: tuple[float, ...]) -> tuple[float, ...]:
        if not value:
            raise ValueError("available_doses must not be empty")
        if any(dose <= 0 for dose in value):
            raise ValueError(f"available_doses must be positive, got {list(value)}")
        return value

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> MedicationConfig:
        """Build a config from a backend ``medication_configs`` row.

        Optional columns left ``NULL`` by the backend fall back to the
        same defaults the app has always applied; ``enabled`` is only
        false when the row says so explicitly.
        """
        return cls.model_validate(
            {
                "id": row.get("id"),
                "name": row.get("name"),
                "generic_name": row.get("generic_name"),
                "available_doses": row.get("available_doses") or (),
                "unit": row.get("unit") or DoseUnit.MG,
                "frequency": row.get("frequency") or DoseFrequency.WEEKLY,
                "featured": row.get("featured") or False,
                "enabled": row.get("enabled") is not False,
            }
        )
