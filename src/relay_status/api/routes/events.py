"""Recent status events endpoint."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request

router = APIRouter(tags=["events"])


@router.get("/events")
async def get_recent_events(
    request: Request,
    limit: int = 20,
    event_type: str | None = None,
    endpoint: str | None = None,
) -> list[dict[str, Any]]:
    """Return recent status events from the in-memory log."""
    event_log = request.app.state.event_log
    events = await event_log.get_recent(limit=limit, event_type=event_type, endpoint=endpoint)
    return [e.to_dict() for e in events]
