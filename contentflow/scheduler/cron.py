"""Lifecycle of cron-scheduled jobs."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Dict, List, Set
from zoneinfo import ZoneInfo

from croniter import croniter

from ..constants import DEFAULT_TIMEZONE
from ..errors import InvalidCronExpressionError, ScheduleNotFoundError
from ..persistence.models import ScheduleTask, TaskLog
from .runner import TaskRunner

if TYPE_CHECKING:
    from ..persistence import Repository

logger = logging.getLogger(__name__)


def validate_cron(expression: str) -> bool:
    """Return ``True`` when ``expression`` is a cron expression croniter accepts."""
    if not expression or not isinstance(expression, str):
        return False
    try:
        return bool(croniter.is_valid(expression))
    except (TypeError, ValueError):
        return False


def ensure_valid_cron(expression: str) -> str:
    if not validate_cron(expression):
        raise InvalidCronExpressionError(expression)
    return expression


def next_fire_time(expression: str, base: datetime) -> datetime:
    return croniter(expression, base).get_next(datetime)


class CronScheduler:
    """Owns the timers of installed schedules.

    Each installed schedule has one ``asyncio.Task`` that sleeps until the
    next cron fire and hands the run to the ``TaskRunner`` as a separate task.
    Stopping a timer does not cancel runs it already started.
    """

    def __init__(
        self,
        runner: TaskRunner,
        repository: Repository,
        timezone: str = DEFAULT_TIMEZONE,
    ) -> None:
        self._runner = runner
        self._repository = repository
        self._timezone = ZoneInfo(timezone)
        self._timers: Dict[str, asyncio.Task] = {}
        self._runs: Set[asyncio.Task] = set()

    @staticmethod
    def validate(expression: str) -> bool:
        return validate_cron(expression)

    async def init(self) -> None:
        """Install every enabled schedule found in the repository."""
        interrupted = await self._repository.interrupt_running_logs()
        if interrupted:
            logger.info(f"Marked {interrupted} unfinished task logs as interrupted")

        schedules = await self._repository.list_schedules()
        logger.info(
            f"Initializing scheduler... Found {len(schedules)} total tasks in database."
        )
        for schedule in schedules:
            if schedule.enabled:
                logger.info(
                    f"Loading enabled task: {schedule.name} [{schedule.id}] "
                    f"with cron: {schedule.cron_expression}"
                )
                self.start(schedule)
            else:
                logger.info(f"Skipping disabled task: {schedule.name} [{schedule.id}]")
        logger.info(f"Scheduler initialized. Active cron tasks: {len(self._timers)}")

    def start(self, schedule: ScheduleTask) -> bool:
        """Install (or reinstall) the timer of ``schedule``.

        Returns ``False`` and leaves the schedule stopped when its cron
        expression is invalid.
        """
        self.stop(schedule.id)

        if not self.validate(schedule.cron_expression):
            logger.error(
                f"Invalid cron expression for task {schedule.name}: {schedule.cron_expression}"
            )
            return False

        self._timers[schedule.id] = asyncio.create_task(
            self._timer_loop(schedule), name=f"cron:{schedule.id}"
        )
        logger.info(f"Scheduled task started: {schedule.name} ({schedule.cron_expression})")
        return True

    def stop(self, schedule_id: str) -> None:
        timer = self._timers.pop(schedule_id, None)
        if timer is not None:
            timer.cancel()
            logger.info(f"Scheduled task stopped: {schedule_id}")

    def stop_all(self) -> None:
        logger.info(f"Stopping all {len(self._timers)} scheduled tasks...")
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()

    def active_ids(self) -> List[str]:
        return list(self._timers)

    def is_active(self, schedule_id: str) -> bool:
        return schedule_id in self._timers

    async def run_now(self, schedule_id: str) -> TaskLog:
        """Run a schedule immediately, whether or not its timer is installed."""
        schedule = await self._repository.get_schedule(schedule_id)
        if schedule is None:
            raise ScheduleNotFoundError(schedule_id)
        return await self._runner.execute(schedule)

    async def wait_for_runs(self) -> None:
        """Wait until every run started by a timer has finished."""
        while self._runs:
            await asyncio.gather(*list(self._runs), return_exceptions=True)

    def _spawn_run(self, schedule: ScheduleTask) -> asyncio.Task:
        run = asyncio.create_task(self._runner.execute(schedule), name=f"run:{schedule.id}")
        self._runs.add(run)
        run.add_done_callback(self._on_run_done)
        return run

    def _on_run_done(self, run: asyncio.Task) -> None:
        self._runs.discard(run)
        if run.cancelled():
            return
        error = run.exception()
        if error is not None:
            logger.error(f"Error in executed task {run.get_name()}: {error}")

    def _now(self) -> datetime:
        return datetime.now(self._timezone)

    async def _timer_loop(self, schedule: ScheduleTask) -> None:
        fire_times = croniter(schedule.cron_expression, self._now())
        while True:
            fire_at = fire_times.get_next(datetime)
            now = self._now()
            if fire_at < now:
                # missed fire times are dropped, not replayed
                logger.warning(
                    f"Skipping missed runs of {schedule.name} scheduled before {now.isoformat()}"
                )
                fire_times = croniter(schedule.cron_expression, now)
                fire_at = fire_times.get_next(datetime)
            wait_seconds = (fire_at - now).total_seconds()
            logger.debug(f"Next run of {schedule.name} at {fire_at.isoformat()}")
            if wait_seconds > 0:
                await asyncio.sleep(wait_seconds)
            logger.info(f"Cron trigger fired for task: {schedule.name}")
            self._spawn_run(schedule)
