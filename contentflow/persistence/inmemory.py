"""In-memory implementation of the repository."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Tuple

from ..contracts import WorkflowDefinition
from ..graph import ensure_acyclic
from .models import ContentItem, ScheduleTask, TaskLog, TaskStatus
from .repository import INTERRUPTED_MESSAGE, Repository


class InMemoryRepository(Repository):
    """Store scheduling state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Records are copied on the way in and
    out so callers never share state with the store.
    """

    def __init__(self) -> None:
        self._schedules: Dict[str, ScheduleTask] = {}
        self._logs: Dict[int, TaskLog] = {}
        self._log_id = 0
        self._workflows: Dict[str, WorkflowDefinition] = {}
        self._items: Dict[Tuple[str, str], Dict[str, ContentItem]] = {}

    # ------------------------------------------------------------------
    async def save_schedule(self, schedule: ScheduleTask) -> None:
        schedule.updated_at = datetime.now(timezone.utc)
        self._schedules[schedule.id] = schedule.model_copy(deep=True)

    async def get_schedule(self, schedule_id: str) -> ScheduleTask | None:
        schedule = self._schedules.get(schedule_id)
        return schedule.model_copy(deep=True) if schedule else None

    async def list_schedules(self) -> list[ScheduleTask]:
        ordered = sorted(
            self._schedules.values(),
            key=lambda s: s.updated_at or datetime.min.replace(tzinfo=timezone.utc),
            reverse=True,
        )
        return [s.model_copy(deep=True) for s in ordered]

    async def delete_schedule(self, schedule_id: str) -> None:
        self._schedules.pop(schedule_id, None)

    # ------------------------------------------------------------------
    async def create_task_log(self, log: TaskLog) -> int:
        self._log_id += 1
        log.id = self._log_id
        self._logs[log.id] = log.model_copy(deep=True)
        return log.id

    async def update_task_log(self, log: TaskLog) -> None:
        stored = self._logs.get(log.id)
        if stored is None or stored.is_finalized:
            return
        self._logs[log.id] = log.model_copy(deep=True)

    async def get_task_log(self, log_id: int) -> TaskLog | None:
        log = self._logs.get(log_id)
        return log.model_copy(deep=True) if log else None

    async def list_task_logs(
        self, task_id: str | None = None, limit: int | None = None, offset: int = 0
    ) -> list[TaskLog]:
        logs = [log for log in self._logs.values() if task_id is None or log.task_id == task_id]
        logs.sort(key=lambda log: (log.start_time, log.id), reverse=True)
        end = offset + limit if limit else None
        return [log.model_copy(deep=True) for log in logs[offset:end]]

    async def interrupt_running_logs(self, message: str = INTERRUPTED_MESSAGE) -> int:
        count = 0
        now = datetime.now(timezone.utc)
        for log in self._logs.values():
            if log.status == TaskStatus.RUNNING:
                log.status = TaskStatus.INTERRUPTED
                log.message = message
                log.end_time = now
                log.duration = int((now - log.start_time).total_seconds() * 1000)
                count += 1
        return count

    # ------------------------------------------------------------------
    async def save_workflow(self, definition: WorkflowDefinition) -> None:
        ensure_acyclic(definition)
        self._workflows[definition.id] = definition.model_copy(deep=True)

    async def get_workflow(self, workflow_id: str) -> WorkflowDefinition | None:
        definition = self._workflows.get(workflow_id)
        return definition.model_copy(deep=True) if definition else None

    async def list_workflows(self) -> list[WorkflowDefinition]:
        return [d.model_copy(deep=True) for d in self._workflows.values()]

    # ------------------------------------------------------------------
    async def list_items(
        self, ingestion_date: str, adapter_name: str | None = None
    ) -> list[ContentItem]:
        items: list[ContentItem] = []
        for (date, adapter), group in self._items.items():
            if date != ingestion_date:
                continue
            if adapter_name is not None and adapter != adapter_name:
                continue
            items.extend(item.model_copy(deep=True) for item in group.values())
        return items

    async def save_items_batch(
        self, items: list[ContentItem], ingestion_date: str, adapter_name: str
    ) -> int:
        group = self._items.setdefault((ingestion_date, adapter_name), {})
        for item in items:
            stored = item.model_copy(deep=True)
            stored.ingestion_date = ingestion_date
            stored.adapter_name = adapter_name
            group[stored.id] = stored
        return len(items)
