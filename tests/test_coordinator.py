"""Tests for the status service: refresh, single-flight, failures, manual tests."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from conftest import NOW, FakeProvider
from relay_status.events.emitter import EventEmitter
from relay_status.events.log import EventLog
from relay_status.status.coordinator import StatusService, create_status_service
from relay_status.status.models import EndpointConfig, HealthCheckRecord, Status, StatusSource
from relay_status.store.manual_tests import InMemoryManualTestStore
from relay_status.store.manual_tests_sqlite import SqliteManualTestStore


def _service(provider: FakeProvider, store=None, emitter=None, clock=lambda: NOW) -> StatusService:
    return StatusService(
        provider,
        store or InMemoryManualTestStore(),
        emitter=emitter,
        clock=clock,
    )


def _emitter_with_log() -> tuple[EventEmitter, EventLog]:
    log = EventLog()
    emitter = EventEmitter()
    emitter.add_listener(log)
    return emitter, log


# ─── refresh ───


class TestRefresh:
    @pytest.mark.asyncio
    async def test_resolves_every_endpoint(self, provider: FakeProvider):
        service = _service(provider)
        result = await service.refresh()
        assert result.updated
        assert result.error is None
        assert set(result.statuses) == {"alpha", "beta", "gamma"}
        assert result.statuses["alpha"].source == StatusSource.RECENT_REQUESTS
        assert result.statuses["beta"].status == Status.AVAILABLE
        assert result.statuses["beta"].source == StatusSource.HEALTH_CHECK
        assert result.statuses["gamma"].status == Status.DISABLED

    @pytest.mark.asyncio
    async def test_installs_snapshot_in_cache(self, provider: FakeProvider):
        service = _service(provider)
        assert service.get_status("alpha") is None
        await service.refresh()
        assert service.get_status("alpha").status == Status.AVAILABLE
        assert service.get_status("missing") is None
        assert set(service.get_all_statuses()) == {"alpha", "beta", "gamma"}

    @pytest.mark.asyncio
    async def test_key_set_follows_config(self, provider: FakeProvider):
        service = _service(provider)
        await service.refresh()
        provider.snapshot.endpoints = [
            EndpointConfig(name="beta", status="untested"),
            EndpointConfig(name="delta", status="enabled"),
        ]
        await service.refresh()
        assert set(service.get_all_statuses()) == {"beta", "delta"}

    @pytest.mark.asyncio
    async def test_recent_requests_queried_with_client_type(self, provider: FakeProvider):
        await _service(provider).refresh()
        assert ("alpha", "claude", 3) in provider.recent_calls
        assert ("beta", "codex", 3) in provider.recent_calls

    @pytest.mark.asyncio
    async def test_disabled_endpoints_skip_history_lookup(self, provider: FakeProvider):
        await _service(provider).refresh()
        assert all(call[0] != "gamma" for call in provider.recent_calls)

    @pytest.mark.asyncio
    async def test_untested_scenario(self):
        provider = FakeProvider(endpoints=[EndpointConfig(name="A", status="untested")])
        result = await _service(provider).refresh()
        record = result.statuses["A"]
        assert record.status == Status.UNTESTED
        assert record.source == StatusSource.CONFIG

    @pytest.mark.asyncio
    async def test_partial_recent_success_beats_health_check(self):
        provider = FakeProvider(
            endpoints=[EndpointConfig(name="B", status="enabled")],
            check_results={"B": HealthCheckRecord(success=True, last_check_at=NOW)},
            recent={"B": [True, True, False]},
        )
        result = await _service(provider).refresh()
        assert result.statuses["B"].status == Status.WARNING
        assert result.statuses["B"].source == StatusSource.RECENT_REQUESTS

    @pytest.mark.asyncio
    async def test_interval_from_config_sets_window(self):
        check = HealthCheckRecord(success=True, last_check_at=NOW - timedelta(seconds=200))
        provider = FakeProvider(
            endpoints=[EndpointConfig(name="ep", status="enabled")],
            check_results={"ep": check},
            interval=120,
        )
        service = _service(provider)
        result = await service.refresh()
        assert service.health_check_interval == 120
        assert result.statuses["ep"].source == StatusSource.HEALTH_CHECK

    @pytest.mark.asyncio
    async def test_missing_interval_uses_default(self):
        check = HealthCheckRecord(success=True, last_check_at=NOW - timedelta(seconds=200))
        provider = FakeProvider(
            endpoints=[EndpointConfig(name="ep", status="enabled")],
            check_results={"ep": check},
            interval=0,
        )
        service = _service(provider)
        result = await service.refresh()
        assert service.health_check_interval == 60
        assert result.statuses["ep"].status == "enabled"


# ─── single-flight ───


class TestSingleFlight:
    @pytest.mark.asyncio
    async def test_concurrent_refreshes_share_one_fetch(self, provider: FakeProvider):
        provider.gate = asyncio.Event()
        service = _service(provider)

        first = asyncio.create_task(service.refresh())
        second = asyncio.create_task(service.refresh())
        await asyncio.sleep(0)
        assert service.refreshing
        provider.gate.set()
        r1, r2 = await asyncio.gather(first, second)

        assert provider.config_calls == 1
        assert provider.check_calls == 1
        assert r1 is r2
        assert not service.refreshing

    @pytest.mark.asyncio
    async def test_next_refresh_after_completion_fetches_again(self, provider: FakeProvider):
        service = _service(provider)
        await service.refresh()
        await service.refresh()
        assert provider.config_calls == 2

    @pytest.mark.asyncio
    async def test_marker_cleared_after_failure(self, provider: FakeProvider):
        service = _service(provider)
        provider.config_error = RuntimeError("proxy down")
        failed = await service.refresh()
        assert not failed.updated
        provider.config_error = None
        ok = await service.refresh()
        assert ok.updated
        assert provider.config_calls == 2

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_cancel_refresh(self, provider: FakeProvider):
        provider.gate = asyncio.Event()
        service = _service(provider)

        doomed = asyncio.create_task(service.refresh())
        survivor = asyncio.create_task(service.refresh())
        await asyncio.sleep(0)
        doomed.cancel()
        provider.gate.set()
        result = await survivor
        assert result.updated
        assert set(result.statuses) == {"alpha", "beta", "gamma"}


# ─── failure handling ───


class TestRefreshFailures:
    @pytest.mark.asyncio
    async def test_config_failure_keeps_previous_snapshot(self, provider: FakeProvider):
        service = _service(provider)
        await service.refresh()
        before = dict(service.get_all_statuses())

        provider.config_error = RuntimeError("connection refused")
        result = await service.refresh()

        assert not result.updated
        assert "connection refused" in result.error
        assert result.statuses == before
        assert dict(service.get_all_statuses()) == before

    @pytest.mark.asyncio
    async def test_health_check_failure_aborts_refresh(self, provider: FakeProvider):
        service = _service(provider)
        provider.check_error = RuntimeError("monitor unavailable")
        result = await service.refresh()
        assert not result.updated
        assert len(service.get_all_statuses()) == 0

    @pytest.mark.asyncio
    async def test_failure_on_empty_cache_returns_empty(self, provider: FakeProvider):
        provider.config_error = RuntimeError("boom")
        result = await _service(provider).refresh()
        assert result.statuses == {}
        assert not result.updated

    @pytest.mark.asyncio
    async def test_recent_request_failure_degrades_one_endpoint(self):
        provider = FakeProvider(
            endpoints=[
                EndpointConfig(name="flaky", status="enabled"),
                EndpointConfig(name="steady", status="enabled"),
            ],
            check_results={"flaky": HealthCheckRecord(success=False, last_check_at=NOW, error_message="502")},
            recent={"flaky": RuntimeError("db locked"), "steady": [True, True, True]},
        )
        result = await _service(provider).refresh()
        assert result.updated
        assert result.statuses["flaky"].source == StatusSource.HEALTH_CHECK
        assert result.statuses["flaky"].status == Status.UNAVAILABLE
        assert result.statuses["steady"].source == StatusSource.RECENT_REQUESTS

    @pytest.mark.asyncio
    async def test_store_read_failure_treated_as_absent(self, provider: FakeProvider):
        store = AsyncMock()
        store.read.side_effect = RuntimeError("disk gone")
        result = await _service(provider, store=store).refresh()
        assert result.updated
        assert result.statuses["beta"].source == StatusSource.HEALTH_CHECK


# ─── manual tests ───


class TestManualTests:
    @pytest.mark.asyncio
    async def test_record_updates_single_entry(self, provider: FakeProvider):
        service = _service(provider)
        await service.refresh()
        record = await service.record_manual_test("beta", False, latency_ms=812.0, error_message="HTTP 401")

        assert record.status == Status.UNAVAILABLE
        assert record.source == StatusSource.MANUAL_TEST
        assert record.observed_at == NOW
        assert service.get_status("beta") == record
        assert service.get_status("alpha").source == StatusSource.RECENT_REQUESTS
        assert provider.config_calls == 1

    @pytest.mark.asyncio
    async def test_record_persists_to_store(self, provider: FakeProvider):
        store = InMemoryManualTestStore()
        service = _service(provider, store=store)
        await service.record_manual_test("alpha", True, latency_ms=90.0)
        saved = await store.read("alpha")
        assert saved is not None
        assert saved.success is True
        assert saved.tested_at == NOW
        assert saved.latency_ms == 90.0
        assert saved.error_message is None

    @pytest.mark.asyncio
    async def test_manual_test_used_by_next_refresh(self):
        provider = FakeProvider(endpoints=[EndpointConfig(name="ep", status="untested")])
        service = _service(provider)
        await service.record_manual_test("ep", True)
        result = await service.refresh()
        assert result.statuses["ep"].status == Status.AVAILABLE
        assert result.statuses["ep"].source == StatusSource.MANUAL_TEST

    @pytest.mark.asyncio
    async def test_persisted_result_seen_by_new_process(self, tmp_path):
        db_path = str(tmp_path / "manual.db")
        provider = FakeProvider(endpoints=[EndpointConfig(name="ep", status="untested")])

        first = _service(provider, store=SqliteManualTestStore(db_path))
        await first.record_manual_test("ep", False)

        later = NOW + timedelta(minutes=30)
        second = _service(provider, store=SqliteManualTestStore(db_path), clock=lambda: later)
        result = await second.refresh()
        assert result.statuses["ep"].status == Status.UNAVAILABLE
        assert result.statuses["ep"].source == StatusSource.MANUAL_TEST

    @pytest.mark.asyncio
    async def test_refresh_keeps_manual_latency_and_error(self, tmp_path):
        provider = FakeProvider(endpoints=[EndpointConfig(name="ep", status="enabled")])
        service = _service(provider, store=SqliteManualTestStore(str(tmp_path / "manual.db")))
        await service.record_manual_test("ep", False, latency_ms=812.0, error_message="HTTP 401")

        record = (await service.refresh()).statuses["ep"]
        assert record.source == StatusSource.MANUAL_TEST
        assert record.latency_ms == 812.0
        assert record.error_message == "HTTP 401"

    @pytest.mark.asyncio
    async def test_persisted_result_expires_after_an_hour(self, tmp_path):
        db_path = str(tmp_path / "manual.db")
        provider = FakeProvider(endpoints=[EndpointConfig(name="ep", status="untested")])

        await _service(provider, store=SqliteManualTestStore(db_path)).record_manual_test("ep", True)

        later = NOW + timedelta(hours=2)
        result = await _service(provider, store=SqliteManualTestStore(db_path), clock=lambda: later).refresh()
        assert result.statuses["ep"].status == Status.UNTESTED


# ─── events ───


class TestServiceEvents:
    @pytest.mark.asyncio
    async def test_refresh_completed_event(self, provider: FakeProvider):
        emitter, log = _emitter_with_log()
        await _service(provider, emitter=emitter).refresh()
        events = await log.get_recent(event_type="refresh.completed")
        assert len(events) == 1
        assert events[0].data == {"endpoint_count": 3}

    @pytest.mark.asyncio
    async def test_refresh_failed_event(self, provider: FakeProvider):
        emitter, log = _emitter_with_log()
        provider.config_error = RuntimeError("nope")
        await _service(provider, emitter=emitter).refresh()
        events = await log.get_recent(event_type="refresh.failed")
        assert len(events) == 1
        assert events[0].data["error"] == "nope"

    @pytest.mark.asyncio
    async def test_status_changed_only_for_transitions(self, provider: FakeProvider):
        emitter, log = _emitter_with_log()
        service = _service(provider, emitter=emitter)
        await service.refresh()
        assert await log.get_recent(event_type="status.changed") == []

        provider.recent["alpha"] = [False, False, False]
        await service.refresh()
        changes = await log.get_recent(event_type="status.changed")
        assert len(changes) == 1
        assert changes[0].endpoint == "alpha"
        assert changes[0].data == {
            "previous": "available",
            "current": "unavailable",
            "source": "recent_requests",
        }

    @pytest.mark.asyncio
    async def test_manual_test_event(self, provider: FakeProvider):
        emitter, log = _emitter_with_log()
        await _service(provider, emitter=emitter).record_manual_test("alpha", True, latency_ms=10.0)
        events = await log.get_recent(event_type="manual_test.recorded")
        assert events[0].endpoint == "alpha"
        assert events[0].data == {"success": True, "latency_ms": 10.0}


# ─── periodic refresh ───


class TestRunPeriodic:
    @pytest.mark.asyncio
    async def test_refreshes_until_cancelled(self, provider: FakeProvider):
        service = _service(provider)
        task = asyncio.create_task(service.run_periodic(0.01))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert provider.config_calls >= 2

    @pytest.mark.asyncio
    async def test_first_pass_waits_one_interval(self, provider: FakeProvider):
        service = _service(provider)
        task = asyncio.create_task(service.run_periodic(3600))
        await asyncio.sleep(0.02)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert provider.config_calls == 0


class TestCreateStatusService:
    def test_in_memory_store_when_no_db_path(self, sample_config):
        service = create_status_service(sample_config)
        assert isinstance(service._store, InMemoryManualTestStore)

    def test_sqlite_store_when_db_path_set(self, sample_config, tmp_path):
        sample_config.manual_test_db_path = str(tmp_path / "x.db")
        service = create_status_service(sample_config)
        assert isinstance(service._store, SqliteManualTestStore)
