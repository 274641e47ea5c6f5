"""Data models for the medtrack resilience layer."""

from medtrack.models._base import MedtrackModel
from medtrack.models.cache import CachedEntry
from medtrack.models.error_log import ErrorDetails, ErrorLogEntry
from medtrack.models.medication import DoseFrequency, DoseUnit, MedicationConfig

__all__ = [
    "CachedEntry",
    "DoseFrequency",
    "DoseUnit",
    "ErrorDetails",
    "ErrorLogEntry",
    "MedicationConfig",
    "MedtrackModel",
]
