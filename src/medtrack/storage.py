"""Persistent key-value store primitives.

The resilience layer only needs async string get/set/remove by key;
every payload is JSON-serialized by the caller.  Two implementations
are provided:

* :class:`MemoryStore` for tests and ephemeral sessions.
* :class:`JsonFileStore`, a single JSON document on disk.  Writes are
  serialized with an :class:`asyncio.Lock`, so concurrent writers to the
  same key never interleave; the last writer wins.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Protocol

from medtrack.exceptions import StorageError

_logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Structural store interface used by the caches and the error log.

    Having a protocol here makes it easy to pass test doubles while
    keeping the production implementations concrete.
    """

    async def get(self, key: str) -> str | None:
        ...

    async def set(self, key: str, value: str) -> None:
        ...

    async def remove(self, key: str) -> None:
        ...


class MemoryStore:
    """Process-local store backed by a dict."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def snapshot(self) -> dict[str, str]:
        """Copy of the raw stored strings (for tests and debugging)."""
        return dict(self._data)


class JsonFileStore:
    """Key-value store persisted as one JSON object in *path*.

    The whole document is loaded lazily on first access and rewritten
    atomically (temp file + ``os.replace``) on every mutation.  File I/O
    runs in a worker thread so the event loop never blocks.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = asyncio.Lock()
        self._data: dict[str, str] | None = None

    @property
    def path(self) -> Path:
        return self._path

    def _read_file(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            text = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise StorageError(f"Cannot read store file {self._path}: {exc}") from exc
        if not text.strip():
            return {}
        try:
            loaded = json.loads(text)
        except json.JSONDecodeError as exc:
            raise StorageError(f"Store file {self._path} is not valid JSON: {exc}") from exc
        if not isinstance(loaded, dict):
            raise StorageError(f"Store file {self._path} does not hold a JSON object")
        return {str(k): v for k, v in loaded.items() if isinstance(v, str)}

    def _write_file(self, data: dict[str, str]) -> None:
        tmp_path = self._path.with_name(f"{self._path.name}.tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(data, separators=(",", ":")), encoding="utf-8")
            os.replace(tmp_path, self._path)
        except OSError as exc:
            raise StorageError(f"Cannot write store file {self._path}: {exc}") from exc

    async def _load(self) -> dict[str, str]:
        if self._data is None:
            self._data = await asyncio.to_thread(self._read_file)
            _logger.debug("Loaded %d keys from %s", len(self._data), self._path)
        return self._data

    async def get(self, key: str) -> str | None:
        async with self._lock:
            data = await self._load()
            return data.get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            data = dict(await self._load())
            data[key] = value
            await asyncio.to_thread(self._write_file, data)
            self._data = data

    async def remove(self, key: str) -> None:
        async with self._lock:
            data = dict(await self._load())
            if data.pop(key, None) is None:
                return
            await asyncio.to_thread(self._write_file, data)
            self._data = data
