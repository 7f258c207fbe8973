"""Shared-key guard for the state-changing status routes."""

from __future__ import annotations

import hmac

from fastapi import Header, HTTPException, Request

API_KEY_HEADER = "X-API-Key"


async def require_api_key(
    request: Request,
    x_api_key: str | None = Header(default=None, alias=API_KEY_HEADER),
) -> None:
    """Reject the request unless it carries the configured ``auth.api_key``.

    An empty ``auth.api_key`` leaves the routes open.
    """
    expected: str = request.app.state.config.auth.api_key
    if not expected:
        return
    if x_api_key is None or not hmac.compare_digest(x_api_key.encode(), expected.encode()):
        raise HTTPException(
            status_code=401,
            detail="Invalid or missing API key",
            headers={"WWW-Authenticate": API_KEY_HEADER},
        )
