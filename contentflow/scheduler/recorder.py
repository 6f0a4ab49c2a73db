"""Bookkeeping for scheduled run logs."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Dict

from ..persistence.models import ScheduleTask, TaskLog, TaskStatus

if TYPE_CHECKING:
    from ..persistence import Repository

logger = logging.getLogger(__name__)


class RunLogRecorder:
    """Creates, advances and finalizes the ``TaskLog`` of each run."""

    def __init__(self, repository: Repository) -> None:
        self._repository = repository
        self._locks: Dict[int, asyncio.Lock] = {}

    async def start(self, schedule: ScheduleTask) -> TaskLog:
        log = TaskLog(
            task_id=schedule.id,
            task_name=schedule.name,
            start_time=datetime.now(timezone.utc),
            status=TaskStatus.RUNNING,
            progress=0,
        )
        await self._repository.create_task_log(log)
        self._locks[log.id] = asyncio.Lock()
        return log

    @staticmethod
    def unsaved_failure(schedule: ScheduleTask, error: BaseException | str) -> TaskLog:
        """A finalized ``TaskLog`` for a run whose log could not be stored."""
        now = datetime.now(timezone.utc)
        return TaskLog(
            task_id=schedule.id,
            task_name=schedule.name,
            start_time=now,
            end_time=now,
            duration=0,
            status=TaskStatus.ERROR,
            message=str(error),
        )

    async def update_progress(self, log: TaskLog, progress: int) -> None:
        """Persist ``progress`` unless a higher value was already written."""
        progress = max(0, min(100, progress))
        lock = self._locks.setdefault(log.id, asyncio.Lock())
        async with lock:
            if log.is_finalized or progress < log.progress:
                return
            log.progress = progress
            await self._repository.update_task_log(log)

    async def finish(self, log: TaskLog, message: str, result_count: int = 0) -> None:
        await self._finalize(
            log, TaskStatus.SUCCESS, message, progress=100, result_count=result_count
        )

    async def fail(self, log: TaskLog, error: BaseException | str) -> None:
        await self._finalize(log, TaskStatus.ERROR, str(error))

    async def _finalize(
        self,
        log: TaskLog,
        status: TaskStatus,
        message: str,
        progress: int | None = None,
        result_count: int | None = None,
    ) -> None:
        lock = self._locks.setdefault(log.id, asyncio.Lock())
        async with lock:
            if log.is_finalized:
                return
            end_time = datetime.now(timezone.utc)
            log.end_time = end_time
            log.duration = int((end_time - log.start_time).total_seconds() * 1000)
            if progress is not None:
                log.progress = progress
            if result_count is not None:
                log.result_count = result_count
            log.message = message
            log.status = status
            await self._repository.update_task_log(log)
        self._locks.pop(log.id, None)
        logger.info(
            f"Task log {log.id} for {log.task_name} finalized as {status.value} "
            f"after {log.duration}ms"
        )
