"""Pydantic models for relay-status configuration."""

from __future__ import annotations

from pydantic import BaseModel, Field


class RelayIdentity(BaseModel):
    """Top-level identity metadata."""

    name: str = "relay-status"
    version: str = "0.1.0"


class ProviderConfig(BaseModel):
    """Where the proxy's admin API lives and how to reach it."""

    base_url: str = "http://localhost:3000"
    api_key_env: str = ""
    timeout: float = 10.0
    config_path: str = "/api/config"
    check_results_path: str = "/api/endpoints/check-results"
    recent_requests_path: str = "/api/requests/recent"


class StatusSettings(BaseModel):
    """Status resolution settings."""

    default_health_check_interval: float = 60.0  # used when the proxy reports none
    refresh_interval: float = 30.0  # 0 = no background refresh


class AuthConfig(BaseModel):
    """Authentication configuration."""

    api_key: str = ""  # empty = auth disabled


class WebhookConfig(BaseModel):
    """Configuration for a single webhook endpoint."""

    url: str
    events: list[str] = Field(default_factory=lambda: ["status.changed"])
    secret: str = ""  # HMAC signing key, supports ${ENV_VAR}


class RelayStatusConfig(BaseModel):
    """Root configuration model for .relay-status.yaml."""

    relay: RelayIdentity = Field(default_factory=RelayIdentity)
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    status: StatusSettings = Field(default_factory=StatusSettings)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    manual_test_db_path: str = "relay_status.db"  # empty = in-memory
    webhooks: list[WebhookConfig] = Field(default_factory=list)
    event_log_size: int = 100
