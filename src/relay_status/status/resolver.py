"""Priority-ordered status resolution.

Each rule inspects one kind of evidence and either produces a
:class:`StatusRecord` or returns ``None`` to defer to the next rule.
The first rule that produces a record wins. Rule order, highest first:

1. ``disabled`` in config
2. the last three proxied requests
3. a health check younger than twice the check interval
4. a manual test younger than one hour
5. ``untested`` in config
6. whatever config says (``unknown`` when it says nothing)
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from relay_status.status.models import (
    EndpointConfig,
    HealthCheckRecord,
    ManualTestRecord,
    RecentRequestSample,
    Status,
    StatusRecord,
    StatusSource,
)

DEFAULT_HEALTH_CHECK_INTERVAL = 60.0
RECENT_REQUEST_SAMPLE_SIZE = 3
MANUAL_TEST_WINDOW = timedelta(hours=1)


@dataclass(frozen=True)
class Evidence:
    """Everything known about one endpoint at resolution time."""

    endpoint: EndpointConfig
    now: datetime
    recent_requests: Sequence[RecentRequestSample] | None = None
    health_check: HealthCheckRecord | None = None
    manual_test: ManualTestRecord | None = None
    health_check_interval: float = DEFAULT_HEALTH_CHECK_INTERVAL


Rule = Callable[[Evidence], StatusRecord | None]


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def is_fresh(observed_at: datetime | None, window: timedelta, now: datetime) -> bool:
    """True when *observed_at* is strictly younger than *window*."""
    if observed_at is None:
        return False
    return _as_utc(now) - _as_utc(observed_at) < window


def disabled_rule(ev: Evidence) -> StatusRecord | None:
    if ev.endpoint.status == Status.DISABLED:
        return StatusRecord(status=Status.DISABLED, source=StatusSource.CONFIG)
    return None


def recent_requests_rule(ev: Evidence) -> StatusRecord | None:
    if not ev.recent_requests or len(ev.recent_requests) < RECENT_REQUEST_SAMPLE_SIZE:
        return None
    window = ev.recent_requests[:RECENT_REQUEST_SAMPLE_SIZE]
    successes = sum(1 for sample in window if sample.success)
    if successes == len(window):
        status = Status.AVAILABLE
    elif successes > 0:
        status = Status.WARNING
    else:
        status = Status.UNAVAILABLE
    return StatusRecord(status=status, source=StatusSource.RECENT_REQUESTS)


def health_check_rule(ev: Evidence) -> StatusRecord | None:
    check = ev.health_check
    if check is None:
        return None
    window = timedelta(seconds=2 * ev.health_check_interval)
    if not is_fresh(check.last_check_at, window, ev.now):
        return None
    return StatusRecord(
        status=Status.AVAILABLE if check.success else Status.UNAVAILABLE,
        source=StatusSource.HEALTH_CHECK,
        observed_at=check.last_check_at,
        latency_ms=check.latency_ms,
        error_message=check.error_message or None,
    )


def manual_test_rule(ev: Evidence) -> StatusRecord | None:
    test = ev.manual_test
    # Stored sentinels such as "unknown" are not evidence
    if test is None or not isinstance(test.success, bool):
        return None
    if not is_fresh(test.tested_at, MANUAL_TEST_WINDOW, ev.now):
        return None
    return StatusRecord(
        status=Status.AVAILABLE if test.success else Status.UNAVAILABLE,
        source=StatusSource.MANUAL_TEST,
        observed_at=test.tested_at,
        latency_ms=test.latency_ms,
        error_message=test.error_message,
    )


def untested_rule(ev: Evidence) -> StatusRecord | None:
    if ev.endpoint.status == Status.UNTESTED:
        return StatusRecord(status=Status.UNTESTED, source=StatusSource.CONFIG)
    return None


def config_fallback_rule(ev: Evidence) -> StatusRecord | None:
    return StatusRecord(
        status=ev.endpoint.status or Status.UNKNOWN,
        source=StatusSource.CONFIG,
    )


RULES: tuple[Rule, ...] = (
    disabled_rule,
    recent_requests_rule,
    health_check_rule,
    manual_test_rule,
    untested_rule,
    config_fallback_rule,
)


def resolve_status(evidence: Evidence, rules: Sequence[Rule] = RULES) -> StatusRecord:
    """Apply *rules* in order and return the first record produced."""
    for rule in rules:
        record = rule(evidence)
        if record is not None:
            return record
    return StatusRecord(status=Status.UNKNOWN, source=StatusSource.CONFIG)
