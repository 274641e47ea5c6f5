from __future__ import annotations

import json
import logging
from datetime import UTC, datetime

import pytest

from medtrack._constants import ERROR_LOGS_KEY
from medtrack.error_log import BoundedErrorLog, describe_error
from medtrack.exceptions import MedtrackTransportError
from medtrack.storage import MemoryStore


class BrokenStore(MemoryStore):
    async def get(self, key: str) -> str | None:
        raise OSError("storage unavailable")

    async def set(self, key: str, value: str) -> None:
        raise OSError("storage unavailable")

    async def remove(self, key: str) -> None:
        raise OSError("storage unavailable")


def _fixed_clock() -> datetime:
    return datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


@pytest.mark.asyncio
async def test_append_builds_entry() -> None:
    log = BoundedErrorLog(MemoryStore(), clock=_fixed_clock)

    entry = await log.append("onboarding.save", ValueError("bad weight"), {"step": 3})

    assert entry.timestamp == "2026-01-01T12:00:00+00:00"
    assert entry.context == "onboarding.save"
    assert entry.error.message == "bad weight"
    assert entry.metadata == {"step": 3}
    assert await log.read_all() == [entry]


@pytest.mark.asyncio
async def test_appending_past_capacity_drops_oldest_entries() -> None:
    log = BoundedErrorLog(MemoryStore())

    for i in range(105):
        await log.append(f"ctx-{i}", f"error {i}")

    entries = await log.read_all()
    assert len(entries) == 100
    assert await log.count() == 100
    contexts = [entry.context for entry in entries]
    for i in range(5):
        assert f"ctx-{i}" not in contexts
    assert contexts[0] == "ctx-5"
    assert contexts[-1] == "ctx-104"
    assert entries[0].error.message == "error 5"


@pytest.mark.asyncio
async def test_custom_capacity() -> None:
    log = BoundedErrorLog(MemoryStore(), capacity=2)
    for name in ("a", "b", "c"):
        await log.append(name, "boom")

    assert [entry.context for entry in await log.read_all()] == ["b", "c"]


def test_capacity_must_be_positive() -> None:
    with pytest.raises(ValueError):
        BoundedErrorLog(MemoryStore(), capacity=0)


@pytest.mark.asyncio
async def test_clear_and_count() -> None:
    store = MemoryStore()
    log = BoundedErrorLog(store)
    await log.append("ctx", "boom")
    assert await log.count() == 1

    await log.clear()

    assert ERROR_LOGS_KEY not in store.snapshot()
    assert await log.count() == 0
    assert await log.read_all() == []


@pytest.mark.asyncio
async def test_export_as_text_is_indented_json() -> None:
    log = BoundedErrorLog(MemoryStore(), clock=_fixed_clock)
    await log.append("sync", {"message": "row violates policy", "code": "42501", "hint": "check RLS"})

    text = await log.export_as_text()

    assert "\n  " in text
    exported = json.loads(text)
    assert exported == [
        {
            "timestamp": "2026-01-01T12:00:00+00:00",
            "context": "sync",
            "error": {"message": "row violates policy", "code": "42501", "hint": "check RLS"},
        }
    ]


@pytest.mark.asyncio
async def test_persistence_failure_goes_to_diagnostics_logger(caplog: pytest.LogCaptureFixture) -> None:
    log = BoundedErrorLog(BrokenStore())

    with caplog.at_level(logging.ERROR, logger="medtrack.diagnostics"):
        entry = await log.append("payments.charge", RuntimeError("card declined"), {"token": "secret-value"})

    assert entry.context == "payments.charge"
    messages = "\n".join(record.getMessage() for record in caplog.records)
    assert "Failed to persist error log entry" in messages
    assert "card declined" in messages
    assert "secret-value" not in messages


@pytest.mark.asyncio
async def test_reads_never_raise_when_store_is_broken() -> None:
    log = BoundedErrorLog(BrokenStore())

    assert await log.read_all() == []
    assert await log.count() == 0
    assert (await log.export_as_text()).startswith("Error exporting logs:")
    await log.clear()


@pytest.mark.asyncio
async def test_echo_mode_logs_every_entry(caplog: pytest.LogCaptureFixture) -> None:
    log = BoundedErrorLog(MemoryStore(), echo=True)

    with caplog.at_level(logging.ERROR, logger="medtrack.diagnostics"):
        await log.append("ctx", "visible")

    assert any("visible" in record.getMessage() for record in caplog.records)


def test_describe_raised_exception_keeps_stack_and_code() -> None:
    try:
        raise MedtrackTransportError("HTTP 503", status_code=503, endpoint="medication_configs")
    except MedtrackTransportError as exc:
        details = describe_error(exc)

    assert details.message == "HTTP 503"
    assert details.code == "503"
    assert details.stack is not None
    assert "MedtrackTransportError" in details.stack


def test_describe_plain_values() -> None:
    assert describe_error("just text").message == "just text"
    assert describe_error(ValueError()).message == "ValueError"
    details = describe_error({"message": "denied", "details": {"table": "doses"}})
    assert details.details == {"table": "doses"}


@pytest.mark.asyncio
async def test_circular_metadata_is_still_persisted() -> None:
    log = BoundedErrorLog(MemoryStore())
    metadata: dict[str, object] = {"step": 1}
    metadata["self"] = metadata

    entry = await log.append("ctx", "boom", metadata)

    assert entry.metadata["step"] == 1
    assert await log.count() == 1


@pytest.mark.asyncio
async def test_non_string_metadata_keys_are_still_persisted() -> None:
    log = BoundedErrorLog(MemoryStore())

    entry = await log.append("ctx", "boom", {(1, 2): "x"})

    assert entry.metadata == {"(1, 2)": "x"}
    assert [stored.metadata for stored in await log.read_all()] == [{"(1, 2)": "x"}]


class Unprintable(Exception):
    def __str__(self) -> str:
        raise RuntimeError("no string form")


@pytest.mark.asyncio
async def test_unbuildable_entry_goes_to_diagnostics_logger(caplog: pytest.LogCaptureFixture) -> None:
    log = BoundedErrorLog(MemoryStore())

    with caplog.at_level(logging.ERROR, logger="medtrack.diagnostics"):
        entry = await log.append("ctx", Unprintable())

    assert entry.context == "ctx"
    assert entry.error.message == "Unprintable"
    assert await log.count() == 0
    assert any("Failed to persist error log entry" in record.getMessage() for record in caplog.records)
