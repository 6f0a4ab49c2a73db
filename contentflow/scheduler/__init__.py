"""Cron scheduling and iterative processing of stored items."""

from .cron import CronScheduler, ensure_valid_cron, next_fire_time, validate_cron
from .processor import ItemProcessor, WorkItem, format_item_for_prompt, parse_json_object
from .recorder import RunLogRecorder
from .runner import TaskRunner
from .service import ScheduleService

__all__ = [
    "CronScheduler",
    "ItemProcessor",
    "RunLogRecorder",
    "ScheduleService",
    "TaskRunner",
    "WorkItem",
    "ensure_valid_cron",
    "format_item_for_prompt",
    "next_fire_time",
    "parse_json_object",
    "validate_cron",
]
