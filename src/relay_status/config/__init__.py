"""relay-status configuration system."""

from relay_status.config.loader import find_config_file, load_config
from relay_status.config.models import (
    AuthConfig,
    ProviderConfig,
    RelayStatusConfig,
    StatusSettings,
    WebhookConfig,
)

__all__ = [
    "AuthConfig",
    "ProviderConfig",
    "RelayStatusConfig",
    "StatusSettings",
    "WebhookConfig",
    "load_config",
    "find_config_file",
]
