"""Scheduling API exposed to operators and other collaborators."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Optional

from ..config import SchedulerConfig
from ..contracts import AgentRunner, IngestionRunner, WorkflowRunner
from ..persistence.models import ScheduleTask, TaskLog
from .cron import CronScheduler
from .runner import TaskRunner

if TYPE_CHECKING:
    from ..persistence import Repository

logger = logging.getLogger(__name__)


class ScheduleService:
    """Facade tying persisted schedules to their timers."""

    def __init__(
        self,
        repository: Repository,
        workflow_runner: WorkflowRunner | None = None,
        agent_runner: AgentRunner | None = None,
        ingestion_runner: IngestionRunner | None = None,
        settings: Optional[SchedulerConfig] = None,
    ) -> None:
        self._repository = repository
        self._settings = settings or SchedulerConfig()
        self.runner = TaskRunner(
            repository,
            workflow_runner=workflow_runner,
            agent_runner=agent_runner,
            ingestion_runner=ingestion_runner,
            settings=self._settings,
        )
        self.scheduler = CronScheduler(self.runner, repository, self._settings.timezone)
        self._triggered: set[asyncio.Task] = set()

    async def start(self) -> None:
        await self.scheduler.init()

    async def shutdown(self, wait: bool = False) -> None:
        """Stop every timer; optionally wait for in-flight runs to finish."""
        self.scheduler.stop_all()
        if wait:
            await self.scheduler.wait_for_runs()
            if self._triggered:
                await asyncio.gather(*list(self._triggered), return_exceptions=True)

    async def save_schedule(self, schedule: ScheduleTask) -> bool:
        """Persist ``schedule`` and (re)install or remove its timer.

        Returns whether a timer is active for the schedule afterwards.
        """
        await self._repository.save_schedule(schedule)
        if schedule.enabled:
            return self.scheduler.start(schedule)
        self.scheduler.stop(schedule.id)
        return False

    async def delete_schedule(self, schedule_id: str) -> None:
        self.scheduler.stop(schedule_id)
        await self._repository.delete_schedule(schedule_id)

    async def get_schedule(self, schedule_id: str) -> ScheduleTask | None:
        return await self._repository.get_schedule(schedule_id)

    async def list_schedules(self) -> list[ScheduleTask]:
        return await self._repository.list_schedules()

    async def list_logs(
        self,
        task_id: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[TaskLog]:
        return await self._repository.list_task_logs(
            task_id=task_id,
            limit=limit or self._settings.log_page_size,
            offset=offset,
        )

    def trigger(self, schedule_id: str) -> asyncio.Task:
        """Start a manual run without waiting for it to finish."""
        run = asyncio.create_task(
            self.scheduler.run_now(schedule_id), name=f"manual:{schedule_id}"
        )
        self._triggered.add(run)
        run.add_done_callback(self._on_trigger_done)
        return run

    def _on_trigger_done(self, run: asyncio.Task) -> None:
        self._triggered.discard(run)
        if run.cancelled():
            return
        error = run.exception()
        if error is not None:
            logger.error(f"Manual run {run.get_name()} failed: {error}")
