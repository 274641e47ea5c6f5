"""Application-facing resilience service.

One :class:`ResilienceService` is built at startup and handed to the rest
of the app.  It owns the catalog resolver, the flag store and the error
log, so tests can build a fresh instance instead of resetting globals.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import aiohttp

from medtrack._transport import RestTransport
from medtrack.cache import _now_ms
from medtrack.catalog import MedicationCatalogResolver, MedicationList
from medtrack.config import MedtrackConfig
from medtrack.error_log import BoundedErrorLog
from medtrack.flags import FeatureFlag, FeatureFlagStore
from medtrack.models.error_log import ErrorLogEntry
from medtrack.models.medication import MedicationConfig
from medtrack.remote import BackendMedicationSource, MedicationSource
from medtrack.storage import JsonFileStore, KeyValueStore

_logger = logging.getLogger(__name__)


class ResilienceService:
    """Cache-backed configuration, feature flags and diagnostic logging.

    Usage::

        async with ResilienceService(MedtrackConfig.from_env()) as service:
            meds = await service.resolve_medication_configs()
            if await service.get_flag(FeatureFlag.FINANCE_MVP):
                ...

    Outside the context manager the service still answers from cache and
    the compiled-in fallback; it just has no backend to talk to unless a
    *source* was passed explicitly.
    """

    def __init__(
        self,
        config: MedtrackConfig,
        *,
        store: KeyValueStore | None = None,
        source: MedicationSource | None = None,
        session: aiohttp.ClientSession | None = None,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._config = config
        self._store: KeyValueStore = store if store is not None else JsonFileStore(config.storage_path)
        self._explicit_source = source is not None
        self._external_session = session is not None
        self._http_session = session

        self.error_log = BoundedErrorLog(
            self._store,
            capacity=config.error_log_capacity,
            echo=config.debug,
        )
        self.flags = FeatureFlagStore(self._store, error_sink=self._record_failure)
        self.catalog = MedicationCatalogResolver(
            self._store,
            source,
            ttl=config.catalog_ttl,
            clock=clock,
            error_sink=self._record_failure,
        )

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> ResilienceService:
        if not self._explicit_source and self._config.has_backend:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            transport = RestTransport(self._config, self._http_session)
            self.catalog.use_source(BackendMedicationSource(transport))
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.catalog.cache.aclose()
        if not self._explicit_source:
            self.catalog.use_source(None)
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    async def _record_failure(self, context: str, exc: BaseException) -> None:
        _logger.warning("Recovered failure in %s: %r", context, exc)
        await self.error_log.append(context, exc)

    async def wait_for_background(self) -> None:
        """Wait for pending background catalog refreshes."""
        await self.catalog.cache.wait_for_background()

    # ------------------------------------------------------------------
    # Medication catalog
    # ------------------------------------------------------------------

    async def resolve_medication_configs(self) -> MedicationList:
        return await self.catalog.resolve()

    async def get_medication_by_id(self, medication_id: str) -> MedicationConfig | None:
        return await self.catalog.get_by_id(medication_id)

    async def get_featured_medications(self) -> list[MedicationConfig]:
        return await self.catalog.featured()

    async def get_enabled_medications(self) -> list[MedicationConfig]:
        return await self.catalog.enabled()

    async def refresh_medication_configs(self) -> MedicationList:
        return await self.catalog.refresh()

    # ------------------------------------------------------------------
    # Feature flags
    # ------------------------------------------------------------------

    async def get_flag(self, key: FeatureFlag | str) -> bool:
        return await self.flags.get(key)

    async def set_flag(self, key: FeatureFlag | str, value: bool) -> None:
        await self.flags.set(key, value)

    async def is_feature_enabled(self, key: FeatureFlag | str) -> bool:
        return await self.flags.is_enabled(key)

    async def reset_flags(self) -> None:
        await self.flags.reset()

    # ------------------------------------------------------------------
    # Error log
    # ------------------------------------------------------------------

    async def log_error(self, context: str, error: Any, metadata: Any = None) -> None:
        await self.error_log.append(context, error, metadata)

    async def get_error_logs(self) -> list[ErrorLogEntry]:
        return await self.error_log.read_all()

    async def clear_error_logs(self) -> None:
        await self.error_log.clear()

    async def export_logs_as_string(self) -> str:
        return await self.error_log.export_as_text()

    async def get_logs_count(self) -> int:
        return await self.error_log.count()
