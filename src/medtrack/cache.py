"""Tiered configuration resolver: cache, then remote, then compiled-in fallback.

Resolution order for :meth:`ConfigCache.resolve`:

1. A persisted :class:`~medtrack.models.CachedEntry` younger than the TTL is
   returned immediately, and a background remote fetch is spawned to renew
   it for later calls.
2. Otherwise the remote source is awaited; a usable result is persisted
   with the current timestamp and returned.
3. Otherwise the fallback supplier's value is persisted and returned, so
   the next cold start skips the remote round trip until the TTL lapses.

Network and storage failures never reach the caller.  The only error that
escapes is :class:`~medtrack.exceptions.FallbackExhaustedError`.

Overlapping ``resolve()`` calls while the cache is stale are not
deduplicated; each may hit the remote source.  Expiry is checked lazily on
read, there is no sweep.

A background refresh only writes if nothing else was persisted since it
was spawned.  A slow refresh that finishes after a successful
:meth:`ConfigCache.force_refresh` (or a foreground remote fetch) drops its
result instead of overwriting the newer entry.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sized
from typing import Any, Generic, TypeVar

from pydantic import TypeAdapter, ValidationError

from medtrack.exceptions import FallbackExhaustedError, MalformedPayloadError
from medtrack.models.cache import CachedEntry
from medtrack.storage import KeyValueStore

_logger = logging.getLogger(__name__)

T = TypeVar("T")

ErrorSink = Callable[[str, BaseException], Awaitable[None]]
"""Receives ``(context, exception)`` for failures recovered off the caller's path."""


def _now_ms() -> int:
    """Current epoch timestamp in milliseconds."""
    return int(time.time() * 1000)


def _is_non_empty(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, Sized):
        return len(value) > 0
    return True


async def log_error_sink(context: str, exc: BaseException) -> None:
    """Default sink: record the failure on the module logger."""
    _logger.warning("%s failed: %r", context, exc, exc_info=exc)


class ConfigCache(Generic[T]):
    """Resolve a value of type *T* through cache, remote and fallback tiers.

    Parameters
    ----------
    name : str
        Short label used in log lines and error-sink contexts.
    store : KeyValueStore
        Persistence for the cached entry.
    key : str
        Store key the entry is written under.
    value_type : Any
        Type annotation of *T* (e.g. ``tuple[MedicationConfig, ...]``).
        Remote results, fallback values and persisted payloads are all
        validated against it.
    ttl : float
        Seconds a persisted entry stays fresh.
    fetch_remote : callable
        Coroutine function returning the remote value.  It may raise or
        return ``None``; both fall through to the next tier.
    fallback : callable
        Synchronous supplier of the compiled-in value.  Must not do I/O.
    is_usable : callable
        Predicate for a remote result worth keeping.  Defaults to
        "not ``None`` and not empty".
    clock : callable
        Wall-clock source in epoch milliseconds.
    error_sink : ErrorSink or None
        Receives background refresh and persistence failures.
    """

    def __init__(
        self,
        *,
        name: str,
        store: KeyValueStore,
        key: str,
        value_type: Any,
        ttl: float,
        fetch_remote: Callable[[], Awaitable[Any]],
        fallback: Callable[[], Any],
        is_usable: Callable[[T], bool] = _is_non_empty,
        clock: Callable[[], int] = _now_ms,
        error_sink: ErrorSink | None = None,
    ) -> None:
        self._name = name
        self._store = store
        self._key = key
        self._adapter: TypeAdapter[T] = TypeAdapter(value_type)
        self._entry_type: type[CachedEntry[Any]] = CachedEntry[value_type]  # type: ignore[valid-type]
        self._ttl_ms = int(ttl * 1000)
        self._fetch_remote = fetch_remote
        self._fallback = fallback
        self._is_usable = is_usable
        self._clock = clock
        self._error_sink: ErrorSink = error_sink or log_error_sink
        self._background: set[asyncio.Task[None]] = set()
        # Bumped on every write; background refreshes compare against it.
        self._generation = 0

    @property
    def key(self) -> str:
        return self._key

    @property
    def pending_background(self) -> int:
        """Number of background refreshes still running."""
        return len(self._background)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def resolve(self) -> T:
        """Return the best value available right now."""
        entry = await self._load_entry()
        now = self._clock()
        if entry is not None and entry.is_fresh(now, self._ttl_ms):
            _logger.debug("%s: cache hit (age %d ms)", self._name, entry.age_ms(now))
            self._spawn_background_refresh()
            return entry.value

        _logger.debug("%s: cache %s", self._name, "stale" if entry is not None else "miss")
        remote = await self._try_remote()
        if remote is not None:
            await self._save(remote)
            return remote

        _logger.info("%s: using compiled-in fallback", self._name)
        value = self._run_fallback()
        await self._save(value)
        return value

    async def force_refresh(self) -> T:
        """Skip the cache tier and ask the remote source.

        On failure the fallback value is returned but nothing is written,
        so a previously persisted good entry survives untouched.
        """
        remote = await self._try_remote()
        if remote is not None:
            await self._save(remote)
            return remote

        _logger.info("%s: forced refresh failed, returning fallback without persisting", self._name)
        return self._run_fallback()

    async def load_cached(self) -> CachedEntry[T] | None:
        """The persisted entry regardless of age, or ``None``."""
        return await self._load_entry()

    async def wait_for_background(self) -> None:
        """Wait until every spawned background refresh has finished."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel outstanding background refreshes."""
        tasks = list(self._background)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Tiers
    # ------------------------------------------------------------------

    def _validate(self, value: Any) -> T:
        try:
            return self._adapter.validate_python(value)
        except ValidationError as exc:
            raise MalformedPayloadError(f"{self._name}: value failed validation: {exc.error_count()} error(s)") from exc

    async def _fetch_usable(self) -> T | None:
        """Run the remote fetch and validate its result; errors propagate."""
        raw = await self._fetch_remote()
        if raw is None:
            return None
        value = self._validate(raw)
        if not self._is_usable(value):
            return None
        return value

    async def _try_remote(self) -> T | None:
        try:
            value = await self._fetch_usable()
        except Exception as exc:
            _logger.warning("%s: remote fetch failed: %r", self._name, exc)
            return None
        if value is None:
            _logger.debug("%s: remote returned nothing usable", self._name)
        return value

    def _run_fallback(self) -> T:
        try:
            return self._validate(self._fallback())
        except Exception as exc:
            raise FallbackExhaustedError(f"{self._name}: fallback supplier failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Background refresh
    # ------------------------------------------------------------------

    def _spawn_background_refresh(self) -> None:
        task = asyncio.create_task(
            self._background_refresh(self._generation), name=f"{self._name}-background-refresh"
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _background_refresh(self, generation: int) -> None:
        try:
            value = await self._fetch_usable()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            await self._report("background_refresh", exc)
            return
        if value is None:
            _logger.debug("%s: background refresh returned nothing usable", self._name)
            return
        if generation != self._generation:
            _logger.debug("%s: background refresh superseded by a newer write, discarding", self._name)
            return
        await self._save(value)
        _logger.debug("%s: background refresh stored new value", self._name)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def _load_entry(self) -> CachedEntry[T] | None:
        try:
            raw = await self._store.get(self._key)
        except Exception as exc:
            await self._report("load", exc)
            return None
        if raw is None:
            return None
        try:
            return self._entry_type.model_validate_json(raw)
        except ValidationError as exc:
            # Older or corrupted payloads are a cache miss, never patched up.
            _logger.warning("%s: discarding malformed cached entry: %d error(s)", self._name, exc.error_count())
            return None

    async def _save(self, value: T) -> None:
        self._generation += 1
        entry = self._entry_type(value=value, fetched_at_epoch_ms=self._clock())
        try:
            await self._store.set(self._key, entry.model_dump_json(by_alias=True))
        except Exception as exc:
            await self._report("save", exc)

    async def _report(self, where: str, exc: BaseException) -> None:
        context = f"{self._name}.{where}"
        try:
            await self._error_sink(context, exc)
        except Exception:
            _logger.warning("Error sink failed while reporting %s", context, exc_info=True)
