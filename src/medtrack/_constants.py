"""Internal constants shared across the library."""

USER_AGENT = "medtrack/1.0"

MEDICATION_CONFIGS_KEY = "@mounjaro:medication_configs"
FEATURE_FLAGS_KEY = "@mounjaro:feature_flags"
ERROR_LOGS_KEY = "@pinpoint:error_logs"

MEDICATION_CONFIGS_TABLE = "medication_configs"

#: Medication catalog time-to-live (24 hours).
CATALOG_TTL_SECONDS: float = 24 * 60 * 60

#: Number of error log entries kept in storage.
MAX_ERROR_LOGS = 100
