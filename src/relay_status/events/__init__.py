"""Status event system for relay-status."""

from __future__ import annotations

from relay_status.events.emitter import (
    EVENT_TYPES,
    EventEmitter,
    EventListener,
    StatusEvent,
    create_cli_emitter,
)
from relay_status.events.log import EventLog
from relay_status.events.webhook import WebhookListener

__all__ = [
    "EVENT_TYPES",
    "EventEmitter",
    "EventListener",
    "EventLog",
    "StatusEvent",
    "WebhookListener",
    "create_cli_emitter",
]
