"""Task Engine snapshot storage. SQLite (aiosqlite) or in-memory."""

import asyncio
import json
import logging
import time
from pathlib import Path

import aiosqlite

from task_engine.models import Report, Task

logger = logging.getLogger(__name__)

_BUSY_TIMEOUT_MS = 5000

_SCHEMA = """
CREATE TABLE IF NOT EXISTS task_snapshot (
    task_id     TEXT    PRIMARY KEY,
    status      TEXT    NOT NULL,
    category    TEXT    NOT NULL,
    payload     TEXT    NOT NULL,
    created_at  REAL    NOT NULL,
    updated_at  REAL    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_ts_status ON task_snapshot(status);

CREATE TABLE IF NOT EXISTS report_snapshot (
    task_id     TEXT    PRIMARY KEY,
    payload     TEXT    NOT NULL,
    updated_at  REAL    NOT NULL
);
"""


class SqliteSnapshotStore:
    """One row per task and per report. save() replaces the whole snapshot in one transaction.

    A single connection is shared, so every operation holds ``_lock``.
    """

    def __init__(self, db_path: Path, busy_timeout: int = _BUSY_TIMEOUT_MS) -> None:
        self._db_path = db_path
        self._busy_timeout = busy_timeout
        self._conn: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    async def ensure_conn(self) -> aiosqlite.Connection:
        """Open connection and ensure schema. Idempotent."""
        async with self._lock:
            return await self._ensure_conn_locked()

    async def _ensure_conn_locked(self) -> aiosqlite.Connection:
        if self._conn is None:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = await aiosqlite.connect(str(self._db_path))
            await self._conn.execute("PRAGMA journal_mode=WAL")
            await self._conn.execute("PRAGMA synchronous=NORMAL")
            await self._conn.execute(f"PRAGMA busy_timeout={self._busy_timeout}")
            await self._conn.executescript(_SCHEMA)
            await self._conn.commit()
            logger.debug("task_engine: schema ensured at %s", self._db_path)
        return self._conn

    async def save(self, tasks: list[Task], reports: list[Report]) -> None:
        """Upsert every task and report, then prune rows absent from the snapshot."""
        async with self._lock:
            conn = await self._ensure_conn_locked()
            now = time.time()
            await conn.execute("BEGIN IMMEDIATE")
            try:
                await conn.executemany(
                    """
                    INSERT INTO task_snapshot
                        (task_id, status, category, payload, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(task_id) DO UPDATE SET
                        status = excluded.status,
                        category = excluded.category,
                        payload = excluded.payload,
                        created_at = excluded.created_at,
                        updated_at = excluded.updated_at
                    """,
                    [
                        (t.id, str(t.status), str(t.category), t.to_json(), t.created_at, now)
                        for t in tasks
                    ],
                )
                await conn.executemany(
                    """
                    INSERT INTO report_snapshot (task_id, payload, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(task_id) DO UPDATE SET
                        payload = excluded.payload,
                        updated_at = excluded.updated_at
                    """,
                    [(r.task_id, r.to_json(), now) for r in reports],
                )
                await self._prune(conn, "task_snapshot", {t.id for t in tasks})
                await self._prune(conn, "report_snapshot", {r.task_id for r in reports})
                await conn.commit()
            except Exception:
                await conn.rollback()
                raise

    @staticmethod
    async def _prune(conn: aiosqlite.Connection, table: str, keep: set[str]) -> None:
        cursor = await conn.execute(f"SELECT task_id FROM {table}")
        stale = [(row[0],) for row in await cursor.fetchall() if row[0] not in keep]
        if stale:
            await conn.executemany(f"DELETE FROM {table} WHERE task_id = ?", stale)

    async def load(self) -> tuple[list[Task], list[Report]]:
        async with self._lock:
            conn = await self._ensure_conn_locked()
            cursor = await conn.execute(
                "SELECT task_id, payload FROM task_snapshot ORDER BY created_at ASC"
            )
            task_rows = await cursor.fetchall()
            cursor = await conn.execute("SELECT task_id, payload FROM report_snapshot")
            report_rows = await cursor.fetchall()
        tasks: list[Task] = []
        for task_id, payload in task_rows:
            try:
                tasks.append(Task.from_json(payload))
            except (ValueError, KeyError, TypeError) as e:
                logger.warning("task_engine: skipping unreadable task %s: %s", task_id, e)
        reports: list[Report] = []
        for task_id, payload in report_rows:
            try:
                reports.append(Report.from_json(payload))
            except (ValueError, KeyError, TypeError) as e:
                logger.warning("task_engine: skipping unreadable report %s: %s", task_id, e)
        return tasks, reports

    async def close(self) -> None:
        """Close the database connection."""
        async with self._lock:
            if self._conn:
                await self._conn.close()
                self._conn = None


class MemorySnapshotStore:
    """Keeps the last snapshot as JSON strings so loads return fresh objects."""

    def __init__(self) -> None:
        self._tasks: list[str] = []
        self._reports: list[str] = []
        self.save_count = 0

    async def save(self, tasks: list[Task], reports: list[Report]) -> None:
        self._tasks = [t.to_json() for t in tasks]
        self._reports = [r.to_json() for r in reports]
        self.save_count += 1

    async def load(self) -> tuple[list[Task], list[Report]]:
        tasks = [Task.from_dict(json.loads(raw)) for raw in self._tasks]
        reports = [Report.from_dict(json.loads(raw)) for raw in self._reports]
        return tasks, reports

    async def close(self) -> None:
        pass
