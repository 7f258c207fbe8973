"""Endpoint status listing, refresh, and manual test endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from relay_status.api.auth import require_api_key
from relay_status.status.coordinator import StatusService

router = APIRouter(tags=["statuses"])


class ManualTestBody(BaseModel):
    success: bool
    latency_ms: float | None = None
    error_message: str | None = None


def _service(request: Request) -> StatusService:
    return request.app.state.status_service


@router.get("/statuses")
async def list_statuses(request: Request) -> list[dict[str, Any]]:
    statuses = _service(request).get_all_statuses()
    return [{"endpoint": name, **record.to_dict()} for name, record in statuses.items()]


@router.get("/statuses/{endpoint}")
async def get_status(request: Request, endpoint: str) -> dict[str, Any]:
    record = _service(request).get_status(endpoint)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Unknown endpoint: {endpoint}")
    return {"endpoint": endpoint, **record.to_dict()}


@router.post("/statuses/refresh", dependencies=[Depends(require_api_key)])
async def refresh_statuses(request: Request) -> dict[str, Any]:
    result = await _service(request).refresh()
    return result.to_dict()


@router.post("/statuses/{endpoint}/manual-test", dependencies=[Depends(require_api_key)])
async def record_manual_test(request: Request, endpoint: str, body: ManualTestBody) -> dict[str, Any]:
    record = await _service(request).record_manual_test(
        endpoint,
        body.success,
        latency_ms=body.latency_ms,
        error_message=body.error_message,
    )
    return {"endpoint": endpoint, **record.to_dict()}
