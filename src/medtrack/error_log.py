"""Bounded, persisted diagnostic log.

Used where no live console is available: failures are appended to a
capped buffer in the key-value store and can be exported later.  When the
store itself fails, the entry goes to the ``medtrack.diagnostics`` logger
instead so it is not lost for that call.
"""

from __future__ import annotations

import json
import logging
import traceback
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from pydantic import TypeAdapter, ValidationError

from medtrack._constants import ERROR_LOGS_KEY, MAX_ERROR_LOGS
from medtrack._redact import redact_for_log
from medtrack.models.error_log import ErrorDetails, ErrorLogEntry
from medtrack.storage import KeyValueStore

_logger = logging.getLogger(__name__)
_diagnostics = logging.getLogger("medtrack.diagnostics")

_ENTRIES = TypeAdapter(list[ErrorLogEntry])


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _json_safe(value: Any) -> Any:
    """Round-trip through JSON so arbitrary metadata can be persisted.

    Values JSON cannot encode as-is (circular references, non-string keys)
    are stored in their redacted log form, or as ``repr`` when even that
    fails.
    """
    if value is None:
        return None
    try:
        return json.loads(json.dumps(value, default=repr))
    except (TypeError, ValueError, RecursionError):
        pass
    try:
        return json.loads(json.dumps(redact_for_log(value), default=repr))
    except Exception:
        return repr(value)


def describe_error(error: Any) -> ErrorDetails:
    """Normalize an exception, message string or backend error mapping."""
    if isinstance(error, BaseException):
        stack = None
        if error.__traceback__ is not None:
            stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        return ErrorDetails(
            message=str(error) or type(error).__name__,
            stack=stack,
            code=getattr(error, "code", None) or getattr(error, "status_code", None),
            details=_json_safe(getattr(error, "details", None)),
            hint=getattr(error, "hint", None),
        )
    if isinstance(error, Mapping):
        message = error.get("message")
        return ErrorDetails(
            message=str(message) if message else str(dict(error)),
            stack=error.get("stack"),
            code=error.get("code"),
            details=_json_safe(error.get("details")),
            hint=error.get("hint"),
        )
    return ErrorDetails(message=str(error))


class BoundedErrorLog:
    """Append-only ring buffer of :class:`ErrorLogEntry`, oldest first.

    Only the most recent *capacity* entries are kept.  Reads never raise:
    a store failure yields an empty log.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        capacity: int = MAX_ERROR_LOGS,
        echo: bool = False,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be > 0, got {capacity}")
        self._store = store
        self._capacity = capacity
        self._echo = echo
        self._clock = clock

    @property
    def capacity(self) -> int:
        return self._capacity

    def build_entry(self, context: str, error: Any, metadata: Any = None) -> ErrorLogEntry:
        return ErrorLogEntry(
            timestamp=self._clock().isoformat(),
            context=context,
            error=describe_error(error),
            metadata=_json_safe(metadata),
        )

    async def _load(self) -> list[ErrorLogEntry]:
        raw = await self._store.get(ERROR_LOGS_KEY)
        if raw is None:
            return []
        try:
            return _ENTRIES.validate_json(raw)
        except ValidationError as exc:
            _logger.warning("Discarding malformed error log buffer: %d error(s)", exc.error_count())
            return []

    async def append(self, context: str, error: Any, metadata: Any = None) -> ErrorLogEntry:
        """Record one failure and return the stored entry.

        Never raises: when the entry cannot be built or persisted, the
        failure goes to the diagnostics logger instead.
        """
        entry: ErrorLogEntry | None = None
        try:
            entry = self.build_entry(context, error, metadata)
            entries = await self._load()
            entries.append(entry)
            trimmed = entries[-self._capacity :]
            await self._store.set(ERROR_LOGS_KEY, self._dump(trimmed))
        except Exception as exc:
            _diagnostics.error("Failed to persist error log entry: %r", exc)
            if entry is None:
                entry = ErrorLogEntry(
                    timestamp=_utcnow().isoformat(),
                    context=str(context),
                    error=ErrorDetails(message=type(error).__name__),
                )
            _diagnostics.error(
                "Original error in %s: %s",
                entry.context,
                json.dumps(redact_for_log(entry.to_storage()), ensure_ascii=False),
            )
            return entry

        if self._echo:
            _diagnostics.error(
                "Error logged in %s: %s (metadata=%s)",
                entry.context,
                entry.error.message,
                redact_for_log(entry.metadata),
            )
        return entry

    async def read_all(self) -> list[ErrorLogEntry]:
        try:
            return await self._load()
        except Exception as exc:
            _diagnostics.error("Failed to retrieve error logs: %r", exc)
            return []

    async def clear(self) -> None:
        try:
            await self._store.remove(ERROR_LOGS_KEY)
        except Exception as exc:
            _diagnostics.error("Failed to clear error logs: %r", exc)
            return
        _logger.info("Error logs cleared")

    async def export_as_text(self) -> str:
        """All entries as indented JSON, for copy/paste out of the device."""
        try:
            entries = await self._load()
        except Exception as exc:
            return f"Error exporting logs: {exc}"
        return self._dump(entries)

    async def count(self) -> int:
        return len(await self.read_all())

    @staticmethod
    def _dump(entries: list[ErrorLogEntry]) -> str:
        return json.dumps([entry.to_storage() for entry in entries], indent=2, ensure_ascii=False)
