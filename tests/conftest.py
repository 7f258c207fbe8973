"""Shared fixtures for relay-status tests."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Dict

import pytest
import yaml

from relay_status.config.models import RelayStatusConfig
from relay_status.status.models import (
    EndpointConfig,
    HealthCheckRecord,
    ProviderSnapshot,
    RecentRequestSample,
)

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)


SAMPLE_CONFIG: Dict[str, Any] = {
    "relay": {"name": "relay-status", "version": "0.1.0"},
    "provider": {
        "base_url": "http://localhost:3000",
        "api_key_env": "RELAY_ADMIN_API_KEY",
        "timeout": 5,
    },
    "status": {
        "default_health_check_interval": 60,
        "refresh_interval": 0,
    },
    "manual_test_db_path": "",
    "webhooks": [],
}


class FakeProvider:
    """Scripted StatusDataProvider that counts calls."""

    def __init__(
        self,
        endpoints: list[EndpointConfig] | None = None,
        check_results: dict[str, HealthCheckRecord] | None = None,
        recent: dict[str, Any] | None = None,
        interval: float | None = 60.0,
    ) -> None:
        self.snapshot = ProviderSnapshot(
            endpoints=endpoints or [],
            health_check_interval_seconds=interval,
        )
        self.check_results = check_results or {}
        # endpoint name -> list of booleans, or an exception to raise
        self.recent = recent or {}
        self.config_error: Exception | None = None
        self.check_error: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.config_calls = 0
        self.check_calls = 0
        self.recent_calls: list[tuple[str, str, int]] = []

    async def fetch_config(self) -> ProviderSnapshot:
        self.config_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.config_error is not None:
            raise self.config_error
        return self.snapshot

    async def fetch_health_check_results(self) -> dict[str, HealthCheckRecord]:
        self.check_calls += 1
        if self.check_error is not None:
            raise self.check_error
        return dict(self.check_results)

    async def fetch_recent_requests(
        self, endpoint: str, client_type: str, limit: int = 3
    ) -> list[RecentRequestSample]:
        self.recent_calls.append((endpoint, client_type, limit))
        outcome = self.recent.get(endpoint, [])
        if isinstance(outcome, Exception):
            raise outcome
        return [RecentRequestSample(success=s) for s in outcome][:limit]


@pytest.fixture()
def sample_config() -> RelayStatusConfig:
    """Return a parsed RelayStatusConfig from sample data."""
    return RelayStatusConfig(**SAMPLE_CONFIG)


@pytest.fixture()
def sample_config_dict() -> Dict[str, Any]:
    """Return raw sample config dict."""
    return dict(SAMPLE_CONFIG)


@pytest.fixture()
def config_file(tmp_path: Path) -> Path:
    """Write sample config to a temp .relay-status.yaml and return the path."""
    path = tmp_path / ".relay-status.yaml"
    with path.open("w") as fh:
        yaml.dump(SAMPLE_CONFIG, fh)
    return path


@pytest.fixture()
def provider() -> FakeProvider:
    return FakeProvider(
        endpoints=[
            EndpointConfig(name="alpha", client_type="claude", status="enabled"),
            EndpointConfig(name="beta", client_type="codex", status="untested"),
            EndpointConfig(name="gamma", status="disabled"),
        ],
        check_results={
            "beta": HealthCheckRecord(success=True, last_check_at=NOW, latency_ms=42.0),
        },
        recent={"alpha": [True, True, True]},
    )
