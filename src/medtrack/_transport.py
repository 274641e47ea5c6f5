"""HTTP transport for the hosted backend's REST interface."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from medtrack._constants import USER_AGENT
from medtrack.config import MedtrackConfig
from medtrack.exceptions import MedtrackTransportError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by the remote sources.

    Having a protocol here makes it easy to pass test doubles while
    keeping the production implementation (`RestTransport`) concrete.
    """

    async def select(self, table: str, params: Mapping[str, str]) -> list[dict[str, Any]]:
        ...


class RestTransport:
    """Read-only client for a PostgREST-style table endpoint.

    ``GET {backend_url}/rest/v1/{table}?{params}`` with the project API key
    in both the ``apikey`` and ``Authorization`` headers.  Timeouts are
    owned by the aiohttp session (``request_timeout``); this layer adds no
    retry or cancellation policy.
    """

    def __init__(self, config: MedtrackConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session

    def _headers(self) -> dict[str, str]:
        headers = {
            "accept": "application/json",
            "user-agent": USER_AGENT,
        }
        if self._config.backend_key:
            headers["apikey"] = self._config.backend_key
            headers["authorization"] = f"Bearer {self._config.backend_key}"
        return headers

    async def select(self, table: str, params: Mapping[str, str]) -> list[dict[str, Any]]:
        """Return the rows of *table* matching *params*.

        Raises :class:`MedtrackTransportError` on network failure, a
        non-200 status, a body that is not JSON, or JSON that is not a
        list of objects.
        """
        if not self._config.backend_url:
            raise MedtrackTransportError("No backend configured", endpoint=table)

        url = f"{self._config.backend_url.rstrip('/')}/rest/v1/{table}"
        timeout = aiohttp.ClientTimeout(total=self._config.request_timeout)

        _logger.debug("GET %s %s", url, dict(params))

        try:
            async with self._http.get(url, params=dict(params), headers=self._headers(), timeout=timeout) as resp:
                text = await resp.text()
                if resp.status != 200:
                    raise MedtrackTransportError(
                        f"HTTP {resp.status} from {table}: {text[:200]}",
                        status_code=resp.status,
                        endpoint=table,
                    )
        except MedtrackTransportError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise MedtrackTransportError(
                f"Request to {table} failed: {exc!r}",
                endpoint=table,
            ) from exc

        try:
            body = json.loads(text)
        except json.JSONDecodeError as exc:
            raise MedtrackTransportError(
                f"Invalid JSON from {table}: {text[:200]}",
                endpoint=table,
            ) from exc

        if not isinstance(body, list) or not all(isinstance(row, dict) for row in body):
            raise MedtrackTransportError(
                f"Expected a JSON array of rows from {table}",
                endpoint=table,
            )
        return body
