"""Feature flags: persisted overrides over compiled-in defaults.

There is no remote tier and no expiry.  The merged set is mirrored in
memory after the first successful load; :meth:`FeatureFlagStore.set` does
a whole-blob read-modify-write, so concurrent writers race at blob
granularity and the last one wins.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from enum import StrEnum
from typing import Any

from medtrack._constants import FEATURE_FLAGS_KEY
from medtrack.cache import ErrorSink, log_error_sink
from medtrack.storage import KeyValueStore

_logger = logging.getLogger(__name__)


class FeatureFlag(StrEnum):
    PAYWALL = "FF_PAYWALL"
    FAQ = "FF_FAQ"
    ONBOARDING_5_CORE = "FF_ONBOARDING_5_CORE"
    TRIAL = "FF_TRIAL"
    MARKETING_CAROUSEL_SHOTSY = "FF_MARKETING_CAROUSEL_SHOTSY"
    FINANCE_MVP = "FF_FINANCE_MVP"
    PAUSES_ALCOHOL = "FF_PAUSES_ALCOHOL"


DEFAULT_FLAGS: Mapping[FeatureFlag, bool] = {
    FeatureFlag.PAYWALL: False,
    FeatureFlag.FAQ: False,
    FeatureFlag.ONBOARDING_5_CORE: True,
    FeatureFlag.TRIAL: False,
    FeatureFlag.MARKETING_CAROUSEL_SHOTSY: True,
    FeatureFlag.FINANCE_MVP: True,
    FeatureFlag.PAUSES_ALCOHOL: True,
}

FlagSet = dict[FeatureFlag, bool]


def _coerce_key(key: FeatureFlag | str) -> FeatureFlag | None:
    try:
        return FeatureFlag(key)
    except ValueError:
        return None


def _parse_overrides(raw: str) -> tuple[FlagSet, dict[str, Any]]:
    """Split a persisted blob into known boolean overrides and unknown keys.

    Unknown keys (written by a newer build, for instance) are returned
    untouched so a later write can carry them forward.  Known keys with
    non-boolean values are dropped.
    """
    loaded: Any = json.loads(raw)
    if not isinstance(loaded, dict):
        raise ValueError("persisted feature flags are not a JSON object")
    parsed: FlagSet = {}
    unknown: dict[str, Any] = {}
    for key, value in loaded.items():
        flag = _coerce_key(key)
        if flag is None:
            unknown[key] = value
        elif isinstance(value, bool):
            parsed[flag] = value
    return parsed, unknown


class FeatureFlagStore:
    """Two-tier flag lookup with an in-process mirror."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        defaults: Mapping[FeatureFlag, bool] = DEFAULT_FLAGS,
        error_sink: ErrorSink | None = None,
    ) -> None:
        self._store = store
        self._defaults = dict(defaults)
        self._error_sink: ErrorSink = error_sink or log_error_sink
        self._mirror: FlagSet | None = None
        self._unknown: dict[str, Any] = {}

    async def _report(self, where: str, exc: BaseException) -> None:
        try:
            await self._error_sink(f"feature_flags.{where}", exc)
        except Exception:
            _logger.warning("Error sink failed while reporting feature_flags.%s", where, exc_info=True)

    async def _read_persisted(self) -> FlagSet | None:
        """Persisted overrides, or ``None`` when the store could not be read."""
        try:
            raw = await self._store.get(FEATURE_FLAGS_KEY)
        except Exception as exc:
            await self._report("load", exc)
            return None
        if raw is None:
            self._unknown = {}
            return {}
        try:
            parsed, self._unknown = _parse_overrides(raw)
        except ValueError as exc:
            _logger.warning("Ignoring malformed persisted feature flags: %s", exc)
            self._unknown = {}
            return {}
        return parsed

    async def _load(self) -> FlagSet:
        if self._mirror is not None:
            return self._mirror
        persisted = await self._read_persisted()
        merged: FlagSet = {**self._defaults, **(persisted or {})}
        if persisted is not None:
            self._mirror = merged
        return merged

    async def get(self, key: FeatureFlag | str) -> bool:
        """Persisted value, else default, else ``False``."""
        flag = _coerce_key(key)
        if flag is None:
            return False
        flags = await self._load()
        return flags.get(flag, False)

    async def is_enabled(self, key: FeatureFlag | str) -> bool:
        return (await self.get(key)) is True

    async def get_all(self) -> FlagSet:
        """Snapshot of every known flag with its effective value."""
        flags = await self._load()
        return {flag: flags.get(flag, False) for flag in FeatureFlag}

    async def set(self, key: FeatureFlag | str, value: bool) -> None:
        """Persist one flag.

        Reads the full persisted set, changes one key and writes the full
        set back, keeping persisted keys this build does not know.  The
        mirror is updated even when the write fails so the rest of this
        process sees the new value.
        """
        flag = _coerce_key(key)
        if flag is None:
            raise ValueError(f"Unknown feature flag: {key!r}")

        persisted = await self._read_persisted()
        base = persisted if persisted is not None else (self._mirror or {})
        merged: FlagSet = {**self._defaults, **base}
        merged[flag] = bool(value)
        self._mirror = merged

        payload = json.dumps({**self._unknown, **{str(k): v for k, v in merged.items()}})
        try:
            await self._store.set(FEATURE_FLAGS_KEY, payload)
        except Exception as exc:
            await self._report("save", exc)
            return
        _logger.info("Feature flag %s set to %s", flag.value, merged[flag])

    async def reset(self) -> None:
        """Drop persisted overrides and the in-process mirror."""
        self._mirror = None
        self._unknown = {}
        try:
            await self._store.remove(FEATURE_FLAGS_KEY)
        except Exception as exc:
            await self._report("reset", exc)
            return
        _logger.info("Feature flags reset to defaults")

    def forget_mirror(self) -> None:
        """Make the next read go back to the store."""
        self._mirror = None
