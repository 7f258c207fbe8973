"""Data models for endpoint status resolution."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Status(StrEnum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    WARNING = "warning"
    DISABLED = "disabled"
    UNTESTED = "untested"
    UNKNOWN = "unknown"


class StatusSource(StrEnum):
    RECENT_REQUESTS = "recent_requests"
    HEALTH_CHECK = "health_check"
    MANUAL_TEST = "manual_test"
    CONFIG = "config"


@dataclass(frozen=True)
class StatusRecord:
    """Resolved availability of one endpoint.

    ``status`` is usually a :class:`Status` member, but the config fallback
    passes the endpoint's raw configured state through verbatim.
    """

    status: str
    source: StatusSource
    observed_at: datetime | None = None
    latency_ms: float | None = None
    error_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": str(self.status),
            "source": str(self.source),
            "observed_at": self.observed_at.isoformat() if self.observed_at else None,
            "latency_ms": self.latency_ms,
            "error_message": self.error_message,
        }


class EndpointConfig(BaseModel):
    """An endpoint as reported by the proxy's configuration."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    client_type: str = Field(default="claude", alias="clientType")
    status: str | None = None
    enabled: bool = True


class HealthCheckRecord(BaseModel):
    """Latest background health-check outcome for one endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    last_check_at: datetime | None = Field(default=None, alias="lastCheckAt")
    latency_ms: float | None = Field(default=None, alias="latencyMs")
    error_message: str | None = Field(default=None, alias="errorMessage")


class RecentRequestSample(BaseModel):
    """Outcome of one proxied request."""

    success: bool


class ProviderSnapshot(BaseModel):
    """Endpoint list plus the health-check cadence it was checked at."""

    model_config = ConfigDict(populate_by_name=True)

    endpoints: list[EndpointConfig] = Field(default_factory=list)
    health_check_interval_seconds: float | None = Field(default=None, alias="healthCheckInterval")


@dataclass
class ManualTestRecord:
    """A persisted manual test outcome.

    ``success`` may hold a non-boolean sentinel (e.g. ``"unknown"``) when it
    was read back from storage; only genuine booleans count as evidence.
    """

    success: bool | str
    tested_at: datetime
    latency_ms: float | None = None
    error_message: str | None = None


@dataclass
class RefreshResult:
    """Outcome of one refresh pass."""

    statuses: dict[str, StatusRecord] = field(default_factory=dict)
    updated: bool = True
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "updated": self.updated,
            "error": self.error,
            "statuses": {name: rec.to_dict() for name, rec in self.statuses.items()},
        }
