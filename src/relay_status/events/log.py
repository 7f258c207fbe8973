"""In-memory ring buffer for recent status events."""

from __future__ import annotations

import asyncio
from collections import deque

from relay_status.events.emitter import StatusEvent


class EventLog:
    """Bounded in-memory event log. Implements EventListener protocol."""

    def __init__(self, max_size: int = 100) -> None:
        self._events: deque[StatusEvent] = deque(maxlen=max_size)
        self._lock = asyncio.Lock()

    async def on_event(self, event: StatusEvent) -> None:
        async with self._lock:
            self._events.append(event)

    async def get_recent(
        self,
        limit: int = 20,
        event_type: str | None = None,
        endpoint: str | None = None,
    ) -> list[StatusEvent]:
        async with self._lock:
            events = [
                e for e in self._events
                if (event_type is None or e.event_type == event_type)
                and (endpoint is None or e.endpoint == endpoint)
            ]
        # Most recent first
        events.reverse()
        return events[:limit]
