"""Base model for medtrack records.

Every persisted record inherits from :class:`MedtrackModel` which
provides:

* ``alias_generator=to_camel`` so records are written with the camelCase
  keys the app has always stored (``genericName``, ``fetchedAtEpochMs``)
  while Python code uses snake_case attributes.
* ``populate_by_name=True`` so backend rows, which already use snake_case
  column names, validate without a separate mapping step.
* Frozen instances: a resolved record is never mutated in place.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class MedtrackModel(BaseModel):
    """Base for persisted and resolved records."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_storage(self) -> dict[str, Any]:
        """JSON-ready dict in the persisted (camelCase) shape."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
