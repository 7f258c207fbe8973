"""Webhook listener that POSTs status events without blocking the emitter."""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import logging
from collections.abc import Iterator
from typing import TYPE_CHECKING

import httpx

from relay_status.events.emitter import StatusEvent

if TYPE_CHECKING:
    from relay_status.config.models import WebhookConfig

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Relay-Signature"
DELIVERY_TIMEOUT = 10.0


def sign_payload(secret: str, body: bytes) -> str:
    """Hex HMAC-SHA256 of *body* keyed by *secret*."""
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


class WebhookListener:
    """Implements EventListener: one background POST per subscribed webhook."""

    def __init__(self, webhooks: list[WebhookConfig]) -> None:
        self._webhooks = webhooks
        self._pending: set[asyncio.Task[None]] = set()

    def _subscribers(self, event_type: str) -> Iterator[WebhookConfig]:
        for wh in self._webhooks:
            if "*" in wh.events or event_type in wh.events:
                yield wh

    async def on_event(self, event: StatusEvent) -> None:
        body = json.dumps(event.to_dict()).encode()
        for wh in self._subscribers(event.event_type):
            task = asyncio.create_task(self._deliver(wh, event, body), name=f"webhook-{wh.url}")
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _deliver(self, wh: WebhookConfig, event: StatusEvent, body: bytes) -> None:
        headers = {"Content-Type": "application/json"}
        # The signature covers the exact bytes sent
        if wh.secret:
            headers[SIGNATURE_HEADER] = sign_payload(wh.secret, body)
        try:
            async with httpx.AsyncClient(timeout=DELIVERY_TIMEOUT) as client:
                resp = await client.post(wh.url, content=body, headers=headers)
        except Exception:
            logger.exception("Webhook %s unreachable for %s", wh.url, event.event_type)
            return
        if resp.status_code >= 400:
            logger.warning(
                "Webhook %s rejected %s with HTTP %s", wh.url, event.event_type, resp.status_code
            )

    async def drain(self) -> None:
        """Wait for in-flight deliveries; short-lived processes call this before exiting."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
