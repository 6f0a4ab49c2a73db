"""Execution path shared by cron fires and manual triggers."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

from ..config import SchedulerConfig
from ..contracts import AgentRunner, IngestionRunner, WorkflowRunner
from ..engine import to_input_text
from ..errors import CollaboratorUnavailableError, UnknownScheduleTypeError
from ..persistence.models import ContentItem, ScheduleTask, ScheduleType, TaskLog, TaskStatus
from .processor import ItemProcessor, format_item_for_prompt, resolve_target_fields
from .recorder import RunLogRecorder

if TYPE_CHECKING:
    from ..persistence import Repository

logger = logging.getLogger(__name__)


class TaskRunner:
    """Executes one run of a schedule and records its outcome.

    Runs of the same schedule are serialised so a manual trigger and a
    timer fire never race on the schedule's last-run fields. Exceptions
    raised by the run are recorded on its log and the schedule, not
    propagated.
    """

    def __init__(
        self,
        repository: Repository,
        workflow_runner: WorkflowRunner | None = None,
        agent_runner: AgentRunner | None = None,
        ingestion_runner: IngestionRunner | None = None,
        settings: Optional[SchedulerConfig] = None,
    ) -> None:
        self._repository = repository
        self._workflow_runner = workflow_runner
        self._agent_runner = agent_runner
        self._ingestion_runner = ingestion_runner
        self._settings = settings or SchedulerConfig()
        self.recorder = RunLogRecorder(repository)
        self.processor = ItemProcessor(repository, self.recorder, self._settings)
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, schedule_id: str) -> asyncio.Lock:
        return self._locks.setdefault(schedule_id, asyncio.Lock())

    async def execute(self, schedule: ScheduleTask) -> TaskLog:
        async with self._lock_for(schedule.id):
            return await self._execute(schedule)

    async def _execute(self, schedule: ScheduleTask) -> TaskLog:
        logger.info(f"Executing scheduled task: {schedule.name} ({schedule.type.value})")
        try:
            log = await self.recorder.start(schedule)
        except Exception as e:
            logger.error(f"Could not create a task log for {schedule.name}: {e}")
            log = self.recorder.unsaved_failure(schedule, e)
            await self._record_outcome(schedule, log, TaskStatus.ERROR, str(e))
            return log

        try:
            result_count, message = await self._dispatch(schedule, log)
            await self.recorder.finish(
                log, message or "Completed successfully", result_count
            )
            await self._record_outcome(schedule, log, TaskStatus.SUCCESS)
        except Exception as e:
            logger.error(f"Scheduled task {schedule.name} failed: {e}")
            await self.recorder.fail(log, e)
            await self._record_outcome(schedule, log, TaskStatus.ERROR, str(e))
        return log

    async def _dispatch(self, schedule: ScheduleTask, log: TaskLog) -> tuple[int, str]:
        config = schedule.config or {}
        fields = ",".join(resolve_target_fields(config))

        async def on_progress(progress: int) -> None:
            await self.recorder.update_progress(log, progress)

        if schedule.type is ScheduleType.FULL_INGESTION:
            runner = self._require(self._ingestion_runner, "Ingestion runner not initialized")
            count = await runner.run_full_ingestion(config, on_progress)
            return count or 0, ""

        if schedule.type is ScheduleType.ADAPTER:
            runner = self._require(self._ingestion_runner, "Ingestion runner not initialized")
            count = await runner.run_adapter(schedule.target_id, config, on_progress)
            return count or 0, ""

        if schedule.type is ScheduleType.WORKFLOW:
            workflows = self._require(self._workflow_runner, "Workflow Engine not initialized")

            async def run_item_workflow(item: ContentItem, date: str) -> Any:
                workflow_input = {"content": format_item_for_prompt(item), "date": date}
                return await workflows.run_workflow(schedule.target_id, workflow_input, date)

            count = await self.processor.process(schedule, log, run_item_workflow)
            return count, f"Workflow executed iteratively for {count} items (Fields: {fields})"

        if schedule.type is ScheduleType.AGENT_DEAL:
            agents = self._require(self._agent_runner, "Agent runner not initialized")
            agent_id = schedule.target_id or self._settings.default_agent_id

            async def run_item_agent(item: ContentItem, date: str) -> str:
                result = await agents.run_agent(
                    agent_id, format_item_for_prompt(item), date, {"silent": True}
                )
                return to_input_text(result.content)

            count = await self.processor.process(schedule, log, run_item_agent)
            return count, f"AI Processing completed for {count} items (Fields: {fields})"

        raise UnknownScheduleTypeError(str(schedule.type))

    @staticmethod
    def _require(collaborator: Any, message: str) -> Any:
        if collaborator is None:
            raise CollaboratorUnavailableError(message)
        return collaborator

    async def _record_outcome(
        self,
        schedule: ScheduleTask,
        log: TaskLog,
        status: TaskStatus,
        error: str | None = None,
    ) -> None:
        schedule.last_run = log.start_time
        schedule.last_status = status
        if error is not None:
            schedule.last_error = error
        try:
            current = await self._repository.get_schedule(schedule.id)
            if current is None:
                logger.info(f"Schedule {schedule.id} no longer exists; outcome not recorded")
                return
            current.last_run = log.start_time
            current.last_status = status
            if error is not None:
                current.last_error = error
            await self._repository.save_schedule(current)
        except Exception as e:
            logger.error(f"Failed to record outcome of schedule {schedule.name}: {e}")
