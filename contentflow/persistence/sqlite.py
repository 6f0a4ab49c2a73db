"""SQLite implementation of the repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..contracts import WorkflowDefinition
from ..graph import ensure_acyclic
from .models import ContentItem, ScheduleTask, TaskLog, TaskStatus
from .repository import INTERRUPTED_MESSAGE, Repository


class SQLiteRepository(Repository):
    """Persist scheduling state using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS schedules (
                id TEXT PRIMARY KEY,
                data TEXT NOT NULL,
                updated_at TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS task_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                task_id TEXT NOT NULL,
                task_name TEXT,
                start_time TEXT NOT NULL,
                end_time TEXT,
                duration INTEGER,
                status TEXT NOT NULL,
                progress INTEGER DEFAULT 0,
                message TEXT,
                result_count INTEGER
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflows (
                id TEXT PRIMARY KEY,
                data TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS source_data (
                id TEXT NOT NULL,
                ingestion_date TEXT NOT NULL,
                adapter_name TEXT NOT NULL,
                data TEXT NOT NULL,
                PRIMARY KEY (ingestion_date, adapter_name, id)
            )
            """
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_source_data_ingestion_date ON source_data(ingestion_date)"
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> sqlite3.Cursor:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()
        return cur

    def _executemany(self, query: str, rows: list[tuple]) -> None:
        with self._conn:
            self._conn.executemany(query, rows)

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    @staticmethod
    def _iso(value: datetime | None) -> str | None:
        return value.isoformat() if value else None

    @staticmethod
    def _row_to_log(row: sqlite3.Row) -> TaskLog:
        return TaskLog(
            id=row["id"],
            task_id=row["task_id"],
            task_name=row["task_name"] or "",
            start_time=datetime.fromisoformat(row["start_time"]),
            end_time=datetime.fromisoformat(row["end_time"]) if row["end_time"] else None,
            duration=row["duration"],
            status=TaskStatus(row["status"]),
            progress=row["progress"] or 0,
            message=row["message"],
            result_count=row["result_count"],
        )

    # ------------------------------------------------------------------
    # Schedules
    async def save_schedule(self, schedule: ScheduleTask) -> None:
        schedule.updated_at = datetime.now(timezone.utc)
        await asyncio.to_thread(
            self._execute,
            "INSERT OR REPLACE INTO schedules (id, data, updated_at) VALUES (?, ?, ?)",
            schedule.id,
            schedule.model_dump_json(),
            schedule.updated_at.isoformat(),
        )

    async def get_schedule(self, schedule_id: str) -> ScheduleTask | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT data FROM schedules WHERE id = ?", schedule_id
        )
        return ScheduleTask.model_validate_json(row["data"]) if row else None

    async def list_schedules(self) -> list[ScheduleTask]:
        rows = await asyncio.to_thread(
            self._fetchall, "SELECT data FROM schedules ORDER BY updated_at DESC"
        )
        return [ScheduleTask.model_validate_json(r["data"]) for r in rows]

    async def delete_schedule(self, schedule_id: str) -> None:
        await asyncio.to_thread(
            self._execute, "DELETE FROM schedules WHERE id = ?", schedule_id
        )

    # ------------------------------------------------------------------
    # Task logs
    async def create_task_log(self, log: TaskLog) -> int:
        cur = await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO task_logs
                (task_id, task_name, start_time, end_time, duration, status, progress, message, result_count)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            log.task_id,
            log.task_name,
            self._iso(log.start_time),
            self._iso(log.end_time),
            log.duration,
            log.status.value,
            log.progress,
            log.message,
            log.result_count,
        )
        log.id = cur.lastrowid
        return log.id

    async def update_task_log(self, log: TaskLog) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            UPDATE task_logs
            SET end_time = ?, duration = ?, status = ?, progress = ?, message = ?, result_count = ?
            WHERE id = ? AND status = ?
            """,
            self._iso(log.end_time),
            log.duration,
            log.status.value,
            log.progress,
            log.message,
            log.result_count,
            log.id,
            TaskStatus.RUNNING.value,
        )

    async def get_task_log(self, log_id: int) -> TaskLog | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT * FROM task_logs WHERE id = ?", log_id
        )
        return self._row_to_log(row) if row else None

    async def list_task_logs(
        self, task_id: str | None = None, limit: int | None = None, offset: int = 0
    ) -> list[TaskLog]:
        query = "SELECT * FROM task_logs"
        params: list[Any] = []
        if task_id:
            query += " WHERE task_id = ?"
            params.append(task_id)
        query += " ORDER BY start_time DESC, id DESC"
        if limit:
            query += " LIMIT ?"
            params.append(limit)
        if offset:
            if not limit:
                query += " LIMIT -1"
            query += " OFFSET ?"
            params.append(offset)
        rows = await asyncio.to_thread(self._fetchall, query, *params)
        return [self._row_to_log(r) for r in rows]

    async def interrupt_running_logs(self, message: str = INTERRUPTED_MESSAGE) -> int:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT id, start_time FROM task_logs WHERE status = ?",
            TaskStatus.RUNNING.value,
        )
        now = datetime.now(timezone.utc)
        updates = [
            (
                TaskStatus.INTERRUPTED.value,
                message,
                self._iso(now),
                int((now - datetime.fromisoformat(row["start_time"])).total_seconds() * 1000),
                row["id"],
                TaskStatus.RUNNING.value,
            )
            for row in rows
        ]
        await asyncio.to_thread(
            self._executemany,
            """
            UPDATE task_logs SET status = ?, message = ?, end_time = ?, duration = ?
            WHERE id = ? AND status = ?
            """,
            updates,
        )
        return len(updates)

    # ------------------------------------------------------------------
    # Workflows
    async def save_workflow(self, definition: WorkflowDefinition) -> None:
        ensure_acyclic(definition)
        await asyncio.to_thread(
            self._execute,
            "INSERT OR REPLACE INTO workflows (id, data) VALUES (?, ?)",
            definition.id,
            definition.model_dump_json(),
        )

    async def get_workflow(self, workflow_id: str) -> WorkflowDefinition | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT data FROM workflows WHERE id = ?", workflow_id
        )
        return WorkflowDefinition.model_validate_json(row["data"]) if row else None

    async def list_workflows(self) -> list[WorkflowDefinition]:
        rows = await asyncio.to_thread(self._fetchall, "SELECT data FROM workflows")
        return [WorkflowDefinition.model_validate_json(r["data"]) for r in rows]

    # ------------------------------------------------------------------
    # Content items
    async def list_items(
        self, ingestion_date: str, adapter_name: str | None = None
    ) -> list[ContentItem]:
        query = "SELECT data FROM source_data WHERE ingestion_date = ?"
        params: list[Any] = [ingestion_date]
        if adapter_name is not None:
            query += " AND adapter_name = ?"
            params.append(adapter_name)
        rows = await asyncio.to_thread(self._fetchall, query, *params)
        return [ContentItem.model_validate_json(r["data"]) for r in rows]

    async def save_items_batch(
        self, items: list[ContentItem], ingestion_date: str, adapter_name: str
    ) -> int:
        if not items:
            return 0
        rows = []
        for item in items:
            stored = item.model_copy(
                update={"ingestion_date": ingestion_date, "adapter_name": adapter_name}
            )
            rows.append((stored.id, ingestion_date, adapter_name, stored.model_dump_json()))
        await asyncio.to_thread(
            self._executemany,
            "INSERT OR REPLACE INTO source_data (id, ingestion_date, adapter_name, data) VALUES (?, ?, ?, ?)",
            rows,
        )
        return len(rows)
