"""medtrack - offline-first configuration, feature flags and error logging
for a medication regimen tracker."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("medtrack")
except PackageNotFoundError:
    __version__ = "0+local"
from medtrack.cache import ConfigCache, ErrorSink
from medtrack.catalog import (
    DEFAULT_MEDICATION_CONFIGS,
    MedicationCatalogResolver,
    fallback_enabled_medications,
    fallback_featured_medications,
    fallback_medication_by_id,
)
from medtrack.config import MedtrackConfig
from medtrack.error_log import BoundedErrorLog
from medtrack.exceptions import (
    FallbackExhaustedError,
    MalformedPayloadError,
    MedtrackConfigError,
    MedtrackError,
    MedtrackTransportError,
    StorageError,
)
from medtrack.flags import DEFAULT_FLAGS, FeatureFlag, FeatureFlagStore
from medtrack.models import (
    CachedEntry,
    DoseFrequency,
    DoseUnit,
    ErrorDetails,
    ErrorLogEntry,
    MedicationConfig,
)
from medtrack.remote import BackendMedicationSource, MedicationSource
from medtrack.service import ResilienceService
from medtrack.storage import JsonFileStore, KeyValueStore, MemoryStore

__all__ = [
    "__version__",
    "BackendMedicationSource",
    "BoundedErrorLog",
    "CachedEntry",
    "ConfigCache",
    "DEFAULT_FLAGS",
    "DEFAULT_MEDICATION_CONFIGS",
    "DoseFrequency",
    "DoseUnit",
    "ErrorDetails",
    "ErrorLogEntry",
    "ErrorSink",
    "FallbackExhaustedError",
    "FeatureFlag",
    "FeatureFlagStore",
    "JsonFileStore",
    "KeyValueStore",
    "MalformedPayloadError",
    "MedicationCatalogResolver",
    "MedicationConfig",
    "MedicationSource",
    "MedtrackConfig",
    "MedtrackConfigError",
    "MedtrackError",
    "MedtrackTransportError",
    "MemoryStore",
    "ResilienceService",
    "StorageError",
    "fallback_enabled_medications",
    "fallback_featured_medications",
    "fallback_medication_by_id",
]
