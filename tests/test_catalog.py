from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import pytest
from pydantic import ValidationError

from medtrack._constants import MEDICATION_CONFIGS_KEY
from medtrack.catalog import (
    DEFAULT_MEDICATION_CONFIGS,
    MedicationCatalogResolver,
    fallback_enabled_medications,
    fallback_featured_medications,
    fallback_medication_by_id,
)
from medtrack.exceptions import MalformedPayloadError, MedtrackTransportError
from medtrack.models.medication import DoseFrequency, DoseUnit, MedicationConfig
from medtrack.remote import BackendMedicationSource
from medtrack.storage import MemoryStore

NOW_MS = 1_760_000_000_000


def _row(**overrides: Any) -> dict[str, Any]:
    row: dict[str, Any] = {
        "id": "mounjaro",
        "name": "Mounjaro",
        "generic_name": "Tirzepatida",
        "available_doses": [2.5, 5, 7.5],
        "unit": "mg",
        "frequency": "weekly",
        "featured": True,
        "enabled": True,
        "created_at": "2025-01-01T00:00:00Z",
    }
    row.update(overrides)
    return row


@dataclass
class FakeTransport:
    rows: list[dict[str, Any]] = field(default_factory=list)
    error: Exception | None = None
    requests: list[tuple[str, dict[str, str]]] = field(default_factory=list)

    async def select(self, table: str, params: Mapping[str, str]) -> list[dict[str, Any]]:
        self.requests.append((table, dict(params)))
        if self.error is not None:
            raise self.error
        return self.rows


def _resolver(store: MemoryStore, transport: FakeTransport | None) -> MedicationCatalogResolver:
    source = BackendMedicationSource(transport) if transport is not None else None
    return MedicationCatalogResolver(store, source, clock=lambda: NOW_MS)


# ---------------------------------------------------------------------------
# Compiled-in table
# ---------------------------------------------------------------------------


def test_fallback_table_has_six_unique_entries() -> None:
    ids = [med.id for med in DEFAULT_MEDICATION_CONFIGS]
    assert len(ids) == 6
    assert len(set(ids)) == 6


def test_fallback_lookup_helpers() -> None:
    ozempic = fallback_medication_by_id("ozempic")
    assert ozempic is not None
    assert ozempic.available_doses == (0.25, 0.5, 1, 2)
    assert fallback_medication_by_id("unknown") is None
    assert [med.id for med in fallback_featured_medications()] == ["mounjaro", "retatrutida"]
    assert len(fallback_enabled_medications()) == 6


def test_saxenda_is_daily() -> None:
    saxenda = fallback_medication_by_id("saxenda")
    assert saxenda is not None
    assert saxenda.frequency is DoseFrequency.DAILY


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------


def test_row_maps_snake_case_columns() -> None:
    config = MedicationConfig.from_row(_row(unit="mL", frequency="daily"))
    assert config.generic_name == "Tirzepatida"
    assert config.available_doses == (2.5, 5.0, 7.5)
    assert config.unit is DoseUnit.ML
    assert config.frequency is DoseFrequency.DAILY


def test_row_missing_optional_columns_uses_defaults() -> None:
    config = MedicationConfig.from_row(_row(unit=None, frequency=None, featured=None, enabled=None))
    assert config.unit is DoseUnit.MG
    assert config.frequency is DoseFrequency.WEEKLY
    assert config.featured is False
    assert config.enabled is True


def test_row_explicitly_disabled() -> None:
    assert MedicationConfig.from_row(_row(enabled=False)).enabled is False


@pytest.mark.asyncio
async def test_source_queries_enabled_rows_featured_first() -> None:
    transport = FakeTransport(rows=[_row()])
    configs = await BackendMedicationSource(transport).list_medication_configs()

    assert [med.id for med in configs] == ["mounjaro"]
    table, params = transport.requests[0]
    assert table == "medication_configs"
    assert params["enabled"] == "eq.true"
    assert params["order"] == "featured.desc,name.asc"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "bad_row",
    [
        _row(available_doses=[]),
        _row(available_doses=[0, 1]),
        _row(unit="tablets"),
        _row(id=None),
    ],
)
async def test_source_rejects_malformed_rows(bad_row: dict[str, Any]) -> None:
    transport = FakeTransport(rows=[_row(id="ok"), bad_row])
    with pytest.raises(MalformedPayloadError):
        await BackendMedicationSource(transport).list_medication_configs()


@pytest.mark.asyncio
async def test_source_rejects_duplicate_ids() -> None:
    transport = FakeTransport(rows=[_row(), _row(name="Other")])
    with pytest.raises(MalformedPayloadError, match="Duplicate"):
        await BackendMedicationSource(transport).list_medication_configs()


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_remote_failure_returns_fallback_catalog() -> None:
    store = MemoryStore()
    resolver = _resolver(store, FakeTransport(error=MedtrackTransportError("offline")))

    configs = await resolver.resolve()

    assert len(configs) == 6
    assert "mounjaro" in [med.id for med in configs]
    assert resolver.last_resolved == configs


@pytest.mark.asyncio
async def test_malformed_remote_payload_is_not_partially_cached() -> None:
    store = MemoryStore()
    resolver = _resolver(store, FakeTransport(rows=[_row(id="new-med"), _row(id="broken", available_doses=[])]))

    configs = await resolver.resolve()

    assert configs == DEFAULT_MEDICATION_CONFIGS
    stored = json.loads(store.snapshot()[MEDICATION_CONFIGS_KEY])
    assert "new-med" not in [med["id"] for med in stored["value"]]


def test_persisted_shape_requires_every_field() -> None:
    with pytest.raises(ValidationError):
        MedicationConfig.model_validate(
            {"id": "legacy", "name": "Legacy", "genericName": "g", "availableDoses": [1]}
        )


@pytest.mark.asyncio
async def test_older_schema_cached_catalog_is_a_cache_miss() -> None:
    legacy = {
        "value": [{"id": "legacy", "name": "Legacy", "genericName": "g", "availableDoses": [1]}],
        "fetchedAtEpochMs": NOW_MS,
    }
    store = MemoryStore({MEDICATION_CONFIGS_KEY: json.dumps(legacy)})
    resolver = _resolver(store, None)

    configs = await resolver.resolve()

    assert configs == DEFAULT_MEDICATION_CONFIGS
    assert "legacy" not in [med.id for med in configs]
    stored = json.loads(store.snapshot()[MEDICATION_CONFIGS_KEY])
    assert stored["value"][0]["unit"] == "mg"


@pytest.mark.asyncio
async def test_remote_catalog_is_persisted_in_camel_case() -> None:
    store = MemoryStore()
    resolver = _resolver(store, FakeTransport(rows=[_row()]))

    configs = await resolver.resolve()

    assert [med.id for med in configs] == ["mounjaro"]
    stored = json.loads(store.snapshot()[MEDICATION_CONFIGS_KEY])
    assert stored["fetchedAtEpochMs"] == NOW_MS
    assert stored["value"][0]["genericName"] == "Tirzepatida"
    assert stored["value"][0]["availableDoses"] == [2.5, 5.0, 7.5]


@pytest.mark.asyncio
async def test_get_medication_by_id_against_fallback_only() -> None:
    resolver = _resolver(MemoryStore(), None)

    ozempic = await resolver.get_by_id("ozempic")

    assert ozempic is not None
    assert list(ozempic.available_doses) == [0.25, 0.5, 1, 2]
    assert await resolver.get_by_id("does-not-exist") is None
    await resolver.cache.wait_for_background()


@pytest.mark.asyncio
async def test_views_filter_resolved_list() -> None:
    rows = [
        _row(id="a", name="A", featured=True, enabled=True),
        _row(id="b", name="B", featured=True, enabled=False),
        _row(id="c", name="C", featured=False, enabled=True),
    ]
    resolver = _resolver(MemoryStore(), FakeTransport(rows=rows))

    assert [med.id for med in await resolver.featured()] == ["a"]
    assert [med.id for med in await resolver.enabled()] == ["a", "c"]
    await resolver.cache.wait_for_background()


@pytest.mark.asyncio
async def test_refresh_failure_keeps_previous_remote_catalog() -> None:
    store = MemoryStore()
    transport = FakeTransport(rows=[_row()])
    resolver = _resolver(store, transport)
    await resolver.resolve()
    before = store.snapshot()[MEDICATION_CONFIGS_KEY]

    transport.error = MedtrackTransportError("offline")
    refreshed = await resolver.refresh()

    assert len(refreshed) == 6
    assert store.snapshot()[MEDICATION_CONFIGS_KEY] == before


@pytest.mark.asyncio
async def test_cached_catalog_is_served_without_waiting_for_remote() -> None:
    store = MemoryStore()
    transport = FakeTransport(rows=[_row()])
    await _resolver(store, transport).resolve()

    transport.error = MedtrackTransportError("offline")
    warm = _resolver(store, transport)
    configs = await warm.resolve()
    await warm.cache.wait_for_background()

    assert [med.id for med in configs] == ["mounjaro"]
    assert len(transport.requests) == 2
