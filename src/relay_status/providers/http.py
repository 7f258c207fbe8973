"""Data provider backed by the proxy's admin HTTP API."""

from __future__ import annotations

import logging
import os
from typing import Any

import httpx
from pydantic import ValidationError

from relay_status.config.models import ProviderConfig
from relay_status.status.models import HealthCheckRecord, ProviderSnapshot, RecentRequestSample

logger = logging.getLogger(__name__)


class HttpStatusProvider:
    """Fetches status inputs over HTTP. Implements StatusDataProvider protocol."""

    def __init__(self, config: ProviderConfig) -> None:
        self._config = config
        self.base_url = config.base_url.rstrip("/")
        self._api_key = os.environ.get(config.api_key_env, "") if config.api_key_env else ""

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Accept": "application/json"}
        if self._api_key:
            headers["X-API-Key"] = self._api_key
        return headers

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        url = f"{self.base_url}{path}"
        async with httpx.AsyncClient(timeout=self._config.timeout) as client:
            resp = await client.get(url, params=params, headers=self._headers())
            resp.raise_for_status()
            return resp.json()

    async def fetch_config(self) -> ProviderSnapshot:
        data = await self._get(self._config.config_path)
        return ProviderSnapshot.model_validate(data)

    async def fetch_health_check_results(self) -> dict[str, HealthCheckRecord]:
        """Parse check results row by row; a malformed row only loses that endpoint's check."""
        data = await self._get(self._config.check_results_path) or {}
        results: dict[str, HealthCheckRecord] = {}
        for name, raw in data.items():
            if raw is None:
                continue
            try:
                results[name] = HealthCheckRecord.model_validate(raw)
            except ValidationError as exc:
                logger.warning("Dropping malformed health check for %s: %s", name, exc)
        return results

    async def fetch_recent_requests(
        self, endpoint: str, client_type: str, limit: int = 3
    ) -> list[RecentRequestSample]:
        data = await self._get(
            self._config.recent_requests_path,
            params={"endpoint": endpoint, "clientType": client_type, "limit": limit},
        )
        return [RecentRequestSample.model_validate(raw) for raw in data or []]
