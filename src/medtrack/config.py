"""Runtime configuration for medtrack."""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path
from typing import Any

from medtrack._constants import CATALOG_TTL_SECONDS, MAX_ERROR_LOGS
from medtrack.exceptions import MedtrackConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class MedtrackConfig:
    """Resilience layer configuration.

    Parameters
    ----------
    backend_url : str
        Base URL of the hosted backend (e.g. ``"https://xyz.supabase.co"``).
        Table queries go to ``{backend_url}/rest/v1/{table}``.
    backend_key : str
        Public API key sent as ``apikey`` and bearer token.
    storage_path : Path
        JSON document backing the on-disk key-value store.
    catalog_ttl : float
        Medication catalog time-to-live in seconds.  Defaults to 24 hours.
    error_log_capacity : int
        Maximum number of persisted error log entries.
    request_timeout : float
        Total timeout in seconds for a remote request.
    debug : bool
        Echo every recorded error to the live log channel, not only the
        ones that failed to persist.
    """

    backend_url: str = ""
    backend_key: str = ""
    storage_path: Path = Path("medtrack-store.json")
    catalog_ttl: float = CATALOG_TTL_SECONDS
    error_log_capacity: int = MAX_ERROR_LOGS
    request_timeout: float = 15.0
    debug: bool = False

    def __post_init__(self) -> None:
        if self.catalog_ttl < 0:
            raise MedtrackConfigError(f"catalog_ttl must be >= 0, got {self.catalog_ttl}")
        if self.error_log_capacity <= 0:
            raise MedtrackConfigError(f"error_log_capacity must be > 0, got {self.error_log_capacity}")
        if self.request_timeout <= 0:
            raise MedtrackConfigError(f"request_timeout must be > 0, got {self.request_timeout}")

    @property
    def has_backend(self) -> bool:
        """Whether a remote backend is configured at all."""
        return bool(self.backend_url)

    @classmethod
    def from_env(cls, **overrides: Any) -> MedtrackConfig:
        """Create configuration from environment variables.

        Reads ``MEDTRACK_BACKEND_URL``, ``MEDTRACK_BACKEND_KEY`` and the
        optional ``MEDTRACK_*`` tuning variables.  Explicit keyword
        arguments override environment values.
        """
        env = os.environ

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in (
            ("MEDTRACK_BACKEND_URL", "backend_url"),
            ("MEDTRACK_BACKEND_KEY", "backend_key"),
        ):
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val.strip()

        path_env = env.get("MEDTRACK_STORAGE_PATH")
        if path_env:
            config_kwargs["storage_path"] = Path(path_env).expanduser()

        try:
            ttl_env = env.get("MEDTRACK_CATALOG_TTL")
            if ttl_env is not None:
                config_kwargs["catalog_ttl"] = float(ttl_env)

            capacity_env = env.get("MEDTRACK_ERROR_LOG_CAPACITY")
            if capacity_env is not None:
                config_kwargs["error_log_capacity"] = int(capacity_env)

            timeout_env = env.get("MEDTRACK_REQUEST_TIMEOUT")
            if timeout_env is not None:
                config_kwargs["request_timeout"] = float(timeout_env)
        except ValueError as exc:
            raise MedtrackConfigError(f"Invalid numeric MEDTRACK_* variable: {exc}") from exc

        config_kwargs["debug"] = _env_bool(env.get("MEDTRACK_DEBUG"), False)

        if "storage_path" in overrides and not isinstance(overrides["storage_path"], Path):
            overrides["storage_path"] = Path(overrides["storage_path"])
        config_kwargs.update(overrides)

        return cls(**config_kwargs)
