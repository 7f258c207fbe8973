"""SQLite-backed manual test store."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

import aiosqlite

from relay_status.status.models import ManualTestRecord

logger = logging.getLogger(__name__)

_CREATE_TABLES = """
CREATE TABLE IF NOT EXISTS manual_tests (
    endpoint TEXT PRIMARY KEY,
    success TEXT NOT NULL,
    tested_at TEXT NOT NULL,
    latency_ms REAL,
    error_message TEXT
);
"""

# Columns added after the first schema; older files get them via ALTER TABLE
_LATER_COLUMNS = {"latency_ms": "REAL", "error_message": "TEXT"}

_BOOL_VALUES = {"true": True, "false": False}


class SqliteManualTestStore:
    """Keeps the latest manual test per endpoint so results survive restarts.

    ``success`` is stored as text. Rows holding anything other than
    ``true``/``false`` (older clients wrote ``unknown``) are returned with the
    raw string so the resolver can ignore them.
    """

    def __init__(self, db_path: str = "relay_status.db") -> None:
        self._db_path = db_path
        self._initialized = False

    async def _init_connection(self, db: aiosqlite.Connection) -> None:
        if self._initialized:
            return
        await db.executescript(_CREATE_TABLES)
        existing = {row[1] for row in await db.execute_fetchall("PRAGMA table_info(manual_tests)")}
        for column, sql_type in _LATER_COLUMNS.items():
            if column not in existing:
                await db.execute(f"ALTER TABLE manual_tests ADD COLUMN {column} {sql_type}")
        await db.commit()
        self._initialized = True

    async def record(
        self,
        endpoint: str,
        success: bool,
        tested_at: datetime,
        latency_ms: float | None = None,
        error_message: str | None = None,
    ) -> None:
        """Upsert the manual test result for *endpoint*."""
        async with aiosqlite.connect(self._db_path) as db:
            await self._init_connection(db)
            await db.execute(
                "INSERT INTO manual_tests (endpoint, success, tested_at, latency_ms, error_message)"
                " VALUES (?, ?, ?, ?, ?)"
                " ON CONFLICT(endpoint) DO UPDATE SET success = excluded.success,"
                " tested_at = excluded.tested_at, latency_ms = excluded.latency_ms,"
                " error_message = excluded.error_message",
                (endpoint, "true" if success else "false", tested_at.isoformat(), latency_ms, error_message),
            )
            await db.commit()

    async def read(self, endpoint: str) -> ManualTestRecord | None:
        async with aiosqlite.connect(self._db_path) as db:
            await self._init_connection(db)
            rows = list(await db.execute_fetchall(
                "SELECT success, tested_at, latency_ms, error_message FROM manual_tests WHERE endpoint = ?",
                (endpoint,),
            ))
        if not rows:
            return None
        raw_success, raw_tested_at, latency_ms, error_message = rows[0]
        tested_at = self._parse_dt(raw_tested_at)
        if tested_at is None:
            logger.warning("Ignoring manual test for %s: bad timestamp %r", endpoint, raw_tested_at)
            return None
        success = _BOOL_VALUES.get(str(raw_success).lower(), str(raw_success))
        return ManualTestRecord(
            success=success,
            tested_at=tested_at,
            latency_ms=latency_ms,
            error_message=error_message or None,
        )

    def _parse_dt(self, val: object) -> datetime | None:
        if not isinstance(val, str):
            return None
        try:
            parsed = datetime.fromisoformat(val)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed
