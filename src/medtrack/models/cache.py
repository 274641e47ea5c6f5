"""Persisted cache envelope."""

from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import Field

from medtrack.models._base import MedtrackModel

T = TypeVar("T")


class CachedEntry(MedtrackModel, Generic[T]):
    """A resolved value together with the wall-clock time it was fetched.

    Written wholesale on every successful resolution, never patched.
    """

    value: T
    fetched_at_epoch_ms: int = Field(ge=0)

    def age_ms(self, now_ms: int) -> int:
        return now_ms - self.fetched_at_epoch_ms

    def is_fresh(self, now_ms: int, ttl_ms: int) -> bool:
        """Fresh when ``0 <= age <= ttl``.

        An entry stamped in the future (clock moved backwards) is treated
        as stale so it cannot stay valid indefinitely.
        """
        age = self.age_ms(now_ms)
        return 0 <= age <= ttl_ms
