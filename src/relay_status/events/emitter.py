"""Event emitter, listener protocol, and status event dataclass."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from relay_status.config.models import RelayStatusConfig

logger = logging.getLogger(__name__)

EVENT_TYPES = frozenset({
    "refresh.completed",
    "refresh.failed",
    "status.changed",
    "manual_test.recorded",
})


@dataclass
class StatusEvent:
    """A typed event emitted by the status service."""

    event_type: str  # "refresh.completed", "status.changed", etc.
    timestamp: datetime
    endpoint: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_type": self.event_type,
            "timestamp": self.timestamp.isoformat(),
            "endpoint": self.endpoint,
            "data": self.data,
        }


class EventListener(Protocol):
    """Protocol for consuming status events."""

    async def on_event(self, event: StatusEvent) -> None: ...


class EventEmitter:
    """Dispatches status events to registered listeners."""

    def __init__(self) -> None:
        self._listeners: list[EventListener] = []

    def add_listener(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    async def emit(self, event: StatusEvent) -> None:
        for listener in self._listeners:
            try:
                await listener.on_event(event)
            except Exception:
                logger.exception("Event listener error")

    async def drain(self) -> None:
        """Let listeners with background work (webhooks) finish it."""
        for listener in self._listeners:
            drain = getattr(listener, "drain", None)
            if drain is not None:
                await drain()


def create_cli_emitter(config: RelayStatusConfig) -> EventEmitter | None:
    """Create an emitter for CLI usage: webhooks only, no event log."""
    if not config.webhooks:
        return None
    from relay_status.events.webhook import WebhookListener

    emitter = EventEmitter()
    emitter.add_listener(WebhookListener(config.webhooks))
    return emitter
