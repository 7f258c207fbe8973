"""Status service: single-flight refresh, cached lookups and manual test recording."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from relay_status.events.emitter import EventEmitter, StatusEvent
from relay_status.providers.base import StatusDataProvider
from relay_status.status.cache import StatusCache
from relay_status.status.models import (
    EndpointConfig,
    ManualTestRecord,
    RecentRequestSample,
    RefreshResult,
    Status,
    StatusRecord,
    StatusSource,
)
from relay_status.status.resolver import (
    DEFAULT_HEALTH_CHECK_INTERVAL,
    RECENT_REQUEST_SAMPLE_SIZE,
    Evidence,
    resolve_status,
)
from relay_status.store.manual_tests import ManualTestStore

if TYPE_CHECKING:
    from relay_status.config.models import RelayStatusConfig

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class StatusService:
    """Owns the status cache and keeps it in step with the data provider.

    Overlapping ``refresh()`` calls share one in-flight task, so the
    provider is queried once and every caller gets the same result.
    """

    def __init__(
        self,
        provider: StatusDataProvider,
        store: ManualTestStore,
        emitter: EventEmitter | None = None,
        default_health_check_interval: float = DEFAULT_HEALTH_CHECK_INTERVAL,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._provider = provider
        self._store = store
        self._emitter = emitter
        self._default_interval = default_health_check_interval
        self._clock = clock
        self._cache = StatusCache()
        self._inflight: asyncio.Task[RefreshResult] | None = None
        self.health_check_interval = default_health_check_interval

    @property
    def cache(self) -> StatusCache:
        return self._cache

    @property
    def refreshing(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def get_status(self, endpoint: str) -> StatusRecord | None:
        return self._cache.get(endpoint)

    def get_all_statuses(self) -> Mapping[str, StatusRecord]:
        return self._cache.get_all()

    async def refresh(self) -> RefreshResult:
        """Re-resolve every configured endpoint and install the new snapshot.

        Never raises for provider failures: when the config or health-check
        fetch fails the previous snapshot is returned with ``updated=False``.
        """
        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.create_task(self._refresh_once(), name="status-refresh")
        else:
            logger.debug("Joining in-flight status refresh")
        # Shield so one cancelled caller does not cancel the shared refresh
        return await asyncio.shield(self._inflight)

    async def record_manual_test(
        self,
        endpoint: str,
        success: bool,
        latency_ms: float | None = None,
        error_message: str | None = None,
    ) -> StatusRecord:
        """Apply a manual test result to the cache and persist it."""
        now = self._clock()
        record = StatusRecord(
            status=Status.AVAILABLE if success else Status.UNAVAILABLE,
            source=StatusSource.MANUAL_TEST,
            observed_at=now,
            latency_ms=latency_ms,
            error_message=error_message or None,
        )
        self._cache.set(endpoint, record)
        await self._store.record(
            endpoint, success, now, latency_ms=latency_ms, error_message=record.error_message
        )
        await self._emit(StatusEvent(
            event_type="manual_test.recorded",
            timestamp=now,
            endpoint=endpoint,
            data={"success": success, "latency_ms": latency_ms},
        ))
        return record

    async def run_periodic(self, interval: float) -> None:
        """Refresh every *interval* seconds until cancelled.

        Waits one interval before the first pass; callers refresh up front.
        """
        logger.info("Background status refresh every %.0fs", interval)
        try:
            while True:
                await asyncio.sleep(interval)
                await self.refresh()
        finally:
            logger.info("Background status refresh stopped")

    async def _refresh_once(self) -> RefreshResult:
        previous = dict(self._cache.get_all())
        snapshot, check_results = await asyncio.gather(
            self._provider.fetch_config(),
            self._provider.fetch_health_check_results(),
            return_exceptions=True,
        )
        failure = next((r for r in (snapshot, check_results) if isinstance(r, BaseException)), None)
        if failure is not None:
            logger.error(
                "Status refresh failed, keeping %d cached statuses",
                len(previous),
                exc_info=failure,
            )
            await self._emit(StatusEvent(
                event_type="refresh.failed",
                timestamp=self._clock(),
                data={"error": str(failure)},
            ))
            return RefreshResult(statuses=previous, updated=False, error=str(failure))

        self.health_check_interval = snapshot.health_check_interval_seconds or self._default_interval
        endpoints = snapshot.endpoints
        recent = await self._fetch_recent_requests(endpoints)
        manual = await self._read_manual_tests(endpoints)

        now = self._clock()
        records: dict[str, StatusRecord] = {}
        for ep in endpoints:
            records[ep.name] = resolve_status(Evidence(
                endpoint=ep,
                now=now,
                recent_requests=recent.get(ep.name),
                health_check=check_results.get(ep.name),
                manual_test=manual.get(ep.name),
                health_check_interval=self.health_check_interval,
            ))

        self._cache.replace_all(records)
        logger.info("Resolved status for %d endpoints", len(records))
        await self._emit_changes(previous, records, now)
        await self._emit(StatusEvent(
            event_type="refresh.completed",
            timestamp=now,
            data={"endpoint_count": len(records)},
        ))
        return RefreshResult(statuses=records)

    async def _fetch_recent_requests(
        self, endpoints: list[EndpointConfig]
    ) -> dict[str, list[RecentRequestSample]]:
        """Fetch request history concurrently; a failed endpoint just has no history."""
        # Disabled endpoints resolve from config alone
        wanted = [ep for ep in endpoints if ep.status != Status.DISABLED]
        results = await asyncio.gather(
            *(
                self._provider.fetch_recent_requests(
                    ep.name, ep.client_type, limit=RECENT_REQUEST_SAMPLE_SIZE
                )
                for ep in wanted
            ),
            return_exceptions=True,
        )
        out: dict[str, list[RecentRequestSample]] = {}
        for ep, result in zip(wanted, results):
            if isinstance(result, BaseException):
                logger.warning("Recent requests unavailable for %s: %s", ep.name, result)
                continue
            out[ep.name] = list(result)
        return out

    async def _read_manual_tests(self, endpoints: list[EndpointConfig]) -> dict[str, ManualTestRecord]:
        out: dict[str, ManualTestRecord] = {}
        for ep in endpoints:
            if ep.status == Status.DISABLED:
                continue
            try:
                record = await self._store.read(ep.name)
            except Exception as exc:
                logger.warning("Manual test for %s unreadable: %s", ep.name, exc)
                continue
            if record is not None:
                out[ep.name] = record
        return out

    async def _emit_changes(
        self,
        previous: Mapping[str, StatusRecord],
        current: Mapping[str, StatusRecord],
        now: datetime,
    ) -> None:
        for name, record in current.items():
            before = previous.get(name)
            if before is None or before.status == record.status:
                continue
            await self._emit(StatusEvent(
                event_type="status.changed",
                timestamp=now,
                endpoint=name,
                data={
                    "previous": str(before.status),
                    "current": str(record.status),
                    "source": str(record.source),
                },
            ))

    async def _emit(self, event: StatusEvent) -> None:
        if self._emitter is not None:
            await self._emitter.emit(event)


def create_status_service(
    config: RelayStatusConfig,
    emitter: EventEmitter | None = None,
    provider: StatusDataProvider | None = None,
) -> StatusService:
    """Wire a StatusService from configuration; *provider* defaults to the HTTP one."""
    from relay_status.providers.http import HttpStatusProvider
    from relay_status.store.manual_tests import InMemoryManualTestStore
    from relay_status.store.manual_tests_sqlite import SqliteManualTestStore

    store: ManualTestStore
    if config.manual_test_db_path:
        store = SqliteManualTestStore(config.manual_test_db_path)
    else:
        store = InMemoryManualTestStore()
    return StatusService(
        provider or HttpStatusProvider(config.provider),
        store,
        emitter=emitter,
        default_health_check_interval=config.status.default_health_check_interval,
    )
