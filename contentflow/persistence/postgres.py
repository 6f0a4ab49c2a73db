"""PostgreSQL implementation of the repository."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

import asyncpg

from ..contracts import WorkflowDefinition
from ..graph import ensure_acyclic
from .models import ContentItem, ScheduleTask, TaskLog, TaskStatus
from .repository import INTERRUPTED_MESSAGE, Repository


class PostgresRepository(Repository):
    """Persist scheduling state using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS schedules (
                id TEXT PRIMARY KEY,
                data JSONB NOT NULL,
                updated_at TIMESTAMPTZ
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS task_logs (
                id SERIAL PRIMARY KEY,
                task_id TEXT NOT NULL,
                task_name TEXT,
                start_time TIMESTAMPTZ NOT NULL,
                end_time TIMESTAMPTZ,
                duration INTEGER,
                status TEXT NOT NULL,
                progress INTEGER DEFAULT 0,
                message TEXT,
                result_count INTEGER
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflows (
                id TEXT PRIMARY KEY,
                data JSONB NOT NULL
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS source_data (
                id TEXT NOT NULL,
                ingestion_date TEXT NOT NULL,
                adapter_name TEXT NOT NULL,
                data JSONB NOT NULL,
                PRIMARY KEY (ingestion_date, adapter_name, id)
            )
            """
        )

    @staticmethod
    def _row_to_log(row: asyncpg.Record) -> TaskLog:
        return TaskLog(
            id=row["id"],
            task_id=row["task_id"],
            task_name=row["task_name"] or "",
            start_time=row["start_time"],
            end_time=row["end_time"],
            duration=row["duration"],
            status=TaskStatus(row["status"]),
            progress=row["progress"] or 0,
            message=row["message"],
            result_count=row["result_count"],
        )

    # ------------------------------------------------------------------
    async def save_schedule(self, schedule: ScheduleTask) -> None:
        schedule.updated_at = datetime.now(timezone.utc)
        conn = await self._connect()
        try:
            await conn.execute(
                """
                INSERT INTO schedules (id, data, updated_at) VALUES ($1, $2, $3)
                ON CONFLICT (id) DO UPDATE SET data = EXCLUDED.data, updated_at = EXCLUDED.updated_at
                """,
                schedule.id,
                schedule.model_dump_json(),
                schedule.updated_at,
            )
        finally:
            await conn.close()

    async def get_schedule(self, schedule_id: str) -> ScheduleTask | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow("SELECT data FROM schedules WHERE id = $1", schedule_id)
        finally:
            await conn.close()
        return ScheduleTask.model_validate_json(row["data"]) if row else None

    async def list_schedules(self) -> list[ScheduleTask]:
        conn = await self._connect()
        try:
            rows = await conn.fetch("SELECT data FROM schedules ORDER BY updated_at DESC")
        finally:
            await conn.close()
        return [ScheduleTask.model_validate_json(r["data"]) for r in rows]

    async def delete_schedule(self, schedule_id: str) -> None:
        conn = await self._connect()
        try:
            await conn.execute("DELETE FROM schedules WHERE id = $1", schedule_id)
        finally:
            await conn.close()

    # ------------------------------------------------------------------
    async def create_task_log(self, log: TaskLog) -> int:
        conn = await self._connect()
        try:
            log.id = await conn.fetchval(
                """
                INSERT INTO task_logs
                    (task_id, task_name, start_time, end_time, duration, status, progress, message, result_count)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                RETURNING id
                """,
                log.task_id,
                log.task_name,
                log.start_time,
                log.end_time,
                log.duration,
                log.status.value,
                log.progress,
                log.message,
                log.result_count,
            )
        finally:
            await conn.close()
        return log.id

    async def update_task_log(self, log: TaskLog) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                """
                UPDATE task_logs
                SET end_time = $1, duration = $2, status = $3, progress = $4, message = $5, result_count = $6
                WHERE id = $7 AND status = $8
                """,
                log.end_time,
                log.duration,
                log.status.value,
                log.progress,
                log.message,
                log.result_count,
                log.id,
                TaskStatus.RUNNING.value,
            )
        finally:
            await conn.close()

    async def get_task_log(self, log_id: int) -> TaskLog | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow("SELECT * FROM task_logs WHERE id = $1", log_id)
        finally:
            await conn.close()
        return self._row_to_log(row) if row else None

    async def list_task_logs(
        self, task_id: str | None = None, limit: int | None = None, offset: int = 0
    ) -> list[TaskLog]:
        query = "SELECT * FROM task_logs"
        params: list[Any] = []
        if task_id:
            params.append(task_id)
            query += f" WHERE task_id = ${len(params)}"
        query += " ORDER BY start_time DESC, id DESC"
        if limit:
            params.append(limit)
            query += f" LIMIT ${len(params)}"
        if offset:
            params.append(offset)
            query += f" OFFSET ${len(params)}"
        conn = await self._connect()
        try:
            rows = await conn.fetch(query, *params)
        finally:
            await conn.close()
        return [self._row_to_log(r) for r in rows]

    async def interrupt_running_logs(self, message: str = INTERRUPTED_MESSAGE) -> int:
        conn = await self._connect()
        try:
            result = await conn.execute(
                """
                UPDATE task_logs
                SET status = $1, message = $2, end_time = $3::TIMESTAMPTZ,
                    duration = (EXTRACT(EPOCH FROM ($3::TIMESTAMPTZ - start_time)) * 1000)::INTEGER
                WHERE status = $4
                """,
                TaskStatus.INTERRUPTED.value,
                message,
                datetime.now(timezone.utc),
                TaskStatus.RUNNING.value,
            )
        finally:
            await conn.close()
        # asyncpg returns the command tag, e.g. "UPDATE 3"
        return int(result.split()[-1])

    # ------------------------------------------------------------------
    async def save_workflow(self, definition: WorkflowDefinition) -> None:
        ensure_acyclic(definition)
        conn = await self._connect()
        try:
            await conn.execute(
                """
                INSERT INTO workflows (id, data) VALUES ($1, $2)
                ON CONFLICT (id) DO UPDATE SET data = EXCLUDED.data
                """,
                definition.id,
                definition.model_dump_json(),
            )
        finally:
            await conn.close()

    async def get_workflow(self, workflow_id: str) -> WorkflowDefinition | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow("SELECT data FROM workflows WHERE id = $1", workflow_id)
        finally:
            await conn.close()
        return WorkflowDefinition.model_validate_json(row["data"]) if row else None

    async def list_workflows(self) -> list[WorkflowDefinition]:
        conn = await self._connect()
        try:
            rows = await conn.fetch("SELECT data FROM workflows")
        finally:
            await conn.close()
        return [WorkflowDefinition.model_validate_json(r["data"]) for r in rows]

    # ------------------------------------------------------------------
    async def list_items(
        self, ingestion_date: str, adapter_name: str | None = None
    ) -> list[ContentItem]:
        query = "SELECT data FROM source_data WHERE ingestion_date = $1"
        params: list[Any] = [ingestion_date]
        if adapter_name is not None:
            params.append(adapter_name)
            query += " AND adapter_name = $2"
        conn = await self._connect()
        try:
            rows = await conn.fetch(query, *params)
        finally:
            await conn.close()
        return [ContentItem.model_validate_json(r["data"]) for r in rows]

    async def save_items_batch(
        self, items: list[ContentItem], ingestion_date: str, adapter_name: str
    ) -> int:
        if not items:
            return 0
        rows = [
            (
                item.id,
                ingestion_date,
                adapter_name,
                json.dumps(
                    item.model_copy(
                        update={"ingestion_date": ingestion_date, "adapter_name": adapter_name}
                    ).model_dump(mode="json")
                ),
            )
            for item in items
        ]
        conn = await self._connect()
        try:
            async with conn.transaction():
                await conn.executemany(
                    """
                    INSERT INTO source_data (id, ingestion_date, adapter_name, data)
                    VALUES ($1, $2, $3, $4)
                    ON CONFLICT (ingestion_date, adapter_name, id)
                    DO UPDATE SET data = EXCLUDED.data
                    """,
                    rows,
                )
        finally:
            await conn.close()
        return len(rows)
