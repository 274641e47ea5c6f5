"""Medication catalog: remote config with a compiled-in fallback table."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from medtrack._constants import CATALOG_TTL_SECONDS, MEDICATION_CONFIGS_KEY
from medtrack.cache import ConfigCache, ErrorSink, _now_ms
from medtrack.models.medication import DoseFrequency, DoseUnit, MedicationConfig
from medtrack.remote import MedicationSource
from medtrack.storage import KeyValueStore

_logger = logging.getLogger(__name__)

MedicationList = tuple[MedicationConfig, ...]

# Used when neither the cache nor the backend can provide the catalog.
DEFAULT_MEDICATION_CONFIGS: MedicationList = (
    MedicationConfig(
        id="mounjaro",
        name="Mounjaro",
        generic_name="Tirzepatida",
        available_doses=(2.5, 5, 7.5, 10, 12.5, 15),
        unit=DoseUnit.MG,
        frequency=DoseFrequency.WEEKLY,
        featured=True,
        enabled=True,
    ),
    MedicationConfig(
        id="retatrutida",
        name="Retatrutida",
        generic_name="Retatrutida",
        available_doses=(2, 4, 6, 8, 10, 12),
        unit=DoseUnit.MG,
        frequency=DoseFrequency.WEEKLY,
        featured=True,
        enabled=True,
    ),
    MedicationConfig(
        id="ozempic",
        name="Ozempic",
        generic_name="Semaglutida",
        available_doses=(0.25, 0.5, 1, 2),
        unit=DoseUnit.MG,
        frequency=DoseFrequency.WEEKLY,
        featured=False,
        enabled=True,
    ),
    MedicationConfig(
        id="saxenda",
        name="Saxenda",
        generic_name="Liraglutida",
        available_doses=(0.6, 1.2, 1.8, 2.4, 3.0),
        unit=DoseUnit.MG,
        frequency=DoseFrequency.DAILY,
        featured=False,
        enabled=True,
    ),
    MedicationConfig(
        id="wegovy",
        name="Wegovy",
        generic_name="Semaglutida",
        available_doses=(0.25, 0.5, 1, 1.7, 2.4),
        unit=DoseUnit.MG,
        frequency=DoseFrequency.WEEKLY,
        featured=False,
        enabled=True,
    ),
    MedicationConfig(
        id="zepbound",
        name="Zepbound",
        generic_name="Tirzepatida",
        available_doses=(2.5, 5, 7.5, 10, 12.5, 15),
        unit=DoseUnit.MG,
        frequency=DoseFrequency.WEEKLY,
        featured=False,
        enabled=True,
    ),
)


def find_by_id(configs: Iterable[MedicationConfig], medication_id: str) -> MedicationConfig | None:
    return next((med for med in configs if med.id == medication_id), None)


def only_featured(configs: Iterable[MedicationConfig]) -> list[MedicationConfig]:
    return [med for med in configs if med.featured and med.enabled]


def only_enabled(configs: Iterable[MedicationConfig]) -> list[MedicationConfig]:
    return [med for med in configs if med.enabled]


def fallback_medication_by_id(medication_id: str) -> MedicationConfig | None:
    return find_by_id(DEFAULT_MEDICATION_CONFIGS, medication_id)


def fallback_featured_medications() -> list[MedicationConfig]:
    return only_featured(DEFAULT_MEDICATION_CONFIGS)


def fallback_enabled_medications() -> list[MedicationConfig]:
    return only_enabled(DEFAULT_MEDICATION_CONFIGS)


def _is_usable_catalog(configs: MedicationList) -> bool:
    ids = [med.id for med in configs]
    return bool(ids) and len(set(ids)) == len(ids)


class MedicationCatalogResolver:
    """Resolve the medication catalog and answer lookups over it.

    Backed by a :class:`ConfigCache` with a 24 hour TTL.  Without a
    remote *source* the resolver still works from cache and fallback.
    The lookup views are computed on each call over the freshly resolved
    list; they are not cached separately.
    """

    def __init__(
        self,
        store: KeyValueStore,
        source: MedicationSource | None = None,
        *,
        ttl: float = CATALOG_TTL_SECONDS,
        clock: Callable[[], int] = _now_ms,
        error_sink: ErrorSink | None = None,
    ) -> None:
        self._source = source
        self._last_resolved: MedicationList | None = None
        self._cache: ConfigCache[MedicationList] = ConfigCache(
            name="medication_catalog",
            store=store,
            key=MEDICATION_CONFIGS_KEY,
            value_type=MedicationList,
            ttl=ttl,
            fetch_remote=self._fetch_remote,
            fallback=fallback_enabled_medications,
            is_usable=_is_usable_catalog,
            clock=clock,
            error_sink=error_sink,
        )

    @property
    def cache(self) -> ConfigCache[MedicationList]:
        return self._cache

    def use_source(self, source: MedicationSource | None) -> None:
        """Swap the remote source (e.g. once an HTTP session exists)."""
        self._source = source

    @property
    def last_resolved(self) -> MedicationList | None:
        """The list returned by the most recent resolution in this process."""
        return self._last_resolved

    async def _fetch_remote(self) -> list[MedicationConfig] | None:
        if self._source is None:
            return None
        return await self._source.list_medication_configs()

    async def resolve(self) -> MedicationList:
        configs = await self._cache.resolve()
        self._last_resolved = configs
        return configs

    async def refresh(self) -> MedicationList:
        configs = await self._cache.force_refresh()
        self._last_resolved = configs
        return configs

    async def get_by_id(self, medication_id: str) -> MedicationConfig | None:
        return find_by_id(await self.resolve(), medication_id)

    async def featured(self) -> list[MedicationConfig]:
        return only_featured(await self.resolve())

    async def enabled(self) -> list[MedicationConfig]:
        return only_enabled(await self.resolve())
