"""Read contracts for the data the status engine reconciles."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from relay_status.status.models import HealthCheckRecord, ProviderSnapshot, RecentRequestSample


@runtime_checkable
class StatusDataProvider(Protocol):
    """Source of endpoint config, health-check results and request history."""

    async def fetch_config(self) -> ProviderSnapshot: ...
    async def fetch_health_check_results(self) -> dict[str, HealthCheckRecord]: ...
    async def fetch_recent_requests(
        self, endpoint: str, client_type: str, limit: int = 3
    ) -> list[RecentRequestSample]: ...
