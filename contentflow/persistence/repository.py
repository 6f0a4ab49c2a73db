"""Repository abstraction for scheduling state persistence."""

from __future__ import annotations

from typing import Protocol

from ..contracts import WorkflowDefinition
from .models import ContentItem, ScheduleTask, TaskLog

INTERRUPTED_MESSAGE = "Task interrupted by process restart"


class Repository(Protocol):
    """Protocol for persistence backends used by the orchestration core."""

    async def save_schedule(self, schedule: ScheduleTask) -> None:
        """Upsert the whole schedule record."""

    async def get_schedule(self, schedule_id: str) -> ScheduleTask | None:
        """Retrieve a schedule by id."""

    async def list_schedules(self) -> list[ScheduleTask]:
        """Return all schedules, most recently updated first."""

    async def delete_schedule(self, schedule_id: str) -> None:
        """Remove a schedule record."""

    async def create_task_log(self, log: TaskLog) -> int:
        """Insert a log row and return its assigned id."""

    async def update_task_log(self, log: TaskLog) -> None:
        """Overwrite a running log row; finalized rows are left untouched."""

    async def get_task_log(self, log_id: int) -> TaskLog | None:
        """Retrieve a log row by id."""

    async def list_task_logs(
        self, task_id: str | None = None, limit: int | None = None, offset: int = 0
    ) -> list[TaskLog]:
        """Return log rows, newest first, optionally filtered by schedule."""

    async def interrupt_running_logs(self, message: str = INTERRUPTED_MESSAGE) -> int:
        """Mark rows left ``running`` by a previous process as interrupted."""

    async def save_workflow(self, definition: WorkflowDefinition) -> None:
        """Persist a workflow definition, rejecting cyclic ones."""

    async def get_workflow(self, workflow_id: str) -> WorkflowDefinition | None:
        """Retrieve a workflow definition by id."""

    async def list_workflows(self) -> list[WorkflowDefinition]:
        """Return all workflow definitions."""

    async def list_items(
        self, ingestion_date: str, adapter_name: str | None = None
    ) -> list[ContentItem]:
        """Return the items ingested on ``ingestion_date``."""

    async def save_items_batch(
        self, items: list[ContentItem], ingestion_date: str, adapter_name: str
    ) -> int:
        """Upsert ``items`` under one date and source group in a single write."""
