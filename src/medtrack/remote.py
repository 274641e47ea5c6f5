"""Remote medication catalog source."""

from __future__ import annotations

import logging
from typing import Protocol

from pydantic import ValidationError

from medtrack._constants import MEDICATION_CONFIGS_TABLE
from medtrack._transport import Transport
from medtrack.exceptions import MalformedPayloadError
from medtrack.models.medication import MedicationConfig

_logger = logging.getLogger(__name__)


class MedicationSource(Protocol):
    """Anything that can list the medication catalog remotely."""

    async def list_medication_configs(self) -> list[MedicationConfig]:
        ...


class BackendMedicationSource:
    """Reads ``medication_configs`` from the hosted backend.

    Only enabled rows are requested, featured first and then by name.
    Rows are mapped 1:1 onto :class:`MedicationConfig`; a single row that
    fails validation rejects the whole payload.
    """

    _QUERY: dict[str, str] = {
        "select": "*",
        "enabled": "eq.true",
        "order": "featured.desc,name.asc",
    }

    def __init__(self, transport: Transport) -> None:
        self._transport = transport

    async def list_medication_configs(self) -> list[MedicationConfig]:
        rows = await self._transport.select(MEDICATION_CONFIGS_TABLE, self._QUERY)
        configs: list[MedicationConfig] = []
        seen: set[str] = set()
        for index, row in enumerate(rows):
            try:
                config = MedicationConfig.from_row(row)
            except ValidationError as exc:
                raise MalformedPayloadError(
                    f"Row {index} of {MEDICATION_CONFIGS_TABLE} is malformed: {exc.error_count()} error(s)"
                ) from exc
            if config.id in seen:
                raise MalformedPayloadError(f"Duplicate medication id {config.id!r} in {MEDICATION_CONFIGS_TABLE}")
            seen.add(config.id)
            configs.append(config)

        _logger.info("Fetched %d medication configs from backend", len(configs))
        return configs
