"""Bounded-concurrency processing of stored content items."""

from __future__ import annotations

import asyncio
import json
import logging
import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import date as date_type
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

from ..config import SchedulerConfig
from ..constants import DEFAULT_TARGET_FIELD
from ..engine import to_input_text
from ..persistence.models import ContentItem, ScheduleTask, TaskLog
from .recorder import RunLogRecorder

if TYPE_CHECKING:
    from ..persistence import Repository

logger = logging.getLogger(__name__)

ItemHandler = Callable[[ContentItem, str], Awaitable[Any]]

KNOWN_FIELDS = ("ai_summary", "ai_score", "tags")


@dataclass
class WorkItem:
    """An item queued for processing with the group it is stored under."""

    item: ContentItem
    date: str
    adapter_name: str


def format_item_for_prompt(item: ContentItem) -> str:
    """Render an item as the text prompt handed to agents and workflows."""
    body = item.metadata.get("content_html") or item.description or "N/A"
    return f"Title: {item.title}\nDescription: {body}\nLink: {item.url}"


def resolve_target_fields(config: Dict[str, Any]) -> List[str]:
    fields = config.get("targetFields") or config.get("target_fields")
    if fields:
        return list(fields)
    return [config.get("targetField") or config.get("target_field") or DEFAULT_TARGET_FIELD]


def window_dates(timezone: str, lookback_days: int, today: Optional[date_type] = None) -> List[str]:
    """ISO dates of the rolling window ending today, oldest first."""
    today = today or datetime.now(ZoneInfo(timezone)).date()
    days = max(1, lookback_days)
    return [(today - timedelta(days=offset)).isoformat() for offset in range(days - 1, -1, -1)]


def _strip_code_fence(text: str) -> str:
    cleaned = text.strip()
    for fence in ("```json", "```markdown", "```"):
        if cleaned.startswith(fence):
            cleaned = cleaned[len(fence):]
            break
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def parse_json_object(text: str) -> Dict[str, Any]:
    """Parse the first top-level ``{...}`` object embedded in ``text``.

    Surrounding prose and markdown code fences are ignored. Raises
    ``ValueError`` when no object can be found or decoded.
    """

    cleaned = _strip_code_fence(text or "")
    start = cleaned.find("{")
    if start == -1:
        raise ValueError("Response does not contain a JSON object")

    depth = 0
    in_string = False
    escaped = False
    for pos in range(start, len(cleaned)):
        char = cleaned[pos]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                parsed = json.loads(cleaned[start : pos + 1])
                if not isinstance(parsed, dict):
                    raise ValueError("Response JSON is not an object")
                return parsed
    raise ValueError("Response contains an unterminated JSON object")


def apply_result(item: ContentItem, parsed: Dict[str, Any], target_fields: List[str]) -> bool:
    """Copy the recognised keys of ``parsed`` into ``item.metadata``.

    Returns ``True`` when at least one of ``target_fields`` was written.
    """
    written: Dict[str, Any] = {}

    summary = parsed.get("ai_summary") or parsed.get("summary")
    if summary:
        written["ai_summary"] = summary

    score = parsed.get("ai_score")
    if score is None:
        score = parsed.get("score")
    if isinstance(score, (int, float)) and not isinstance(score, bool):
        written["ai_score"] = score

    reason = parsed.get("ai_score_reason") or parsed.get("reason")
    if reason:
        written["ai_score_reason"] = reason

    tags = parsed.get("tags")
    if isinstance(tags, list):
        written["tags"] = tags

    for field in target_fields:
        if field not in KNOWN_FIELDS and field in parsed:
            written[field] = parsed[field]

    item.metadata.update(written)
    return any(field in written for field in target_fields)


def is_missing(metadata: Dict[str, Any], field: str) -> bool:
    return field not in metadata or metadata[field] is None or metadata[field] == ""


def _percent(done: int, total: int) -> int:
    return int(math.floor(done / total * 100 + 0.5))


class ItemProcessor:
    """Runs a handler over every item missing one of a schedule's target fields.

    A fixed pool of workers drains a shared queue. Worker ``i`` waits
    ``i * stagger_seconds`` before its first pull and every worker pauses for
    the schedule's ``delay`` (milliseconds) after a successful item while
    work remains. Updated items are written back once per
    ``(date, adapter_name)`` group after the pool finishes.
    """

    def __init__(
        self,
        repository: Repository,
        recorder: RunLogRecorder,
        settings: Optional[SchedulerConfig] = None,
    ) -> None:
        self._repository = repository
        self._recorder = recorder
        self._settings = settings or SchedulerConfig()

    async def collect(self, target_fields: List[str], dates: List[str]) -> List[WorkItem]:
        queue: List[WorkItem] = []
        for day in dates:
            for item in await self._repository.list_items(day):
                if any(is_missing(item.metadata, field) for field in target_fields):
                    queue.append(WorkItem(item=item, date=day, adapter_name=item.adapter_name or ""))
        return queue

    async def process(
        self,
        schedule: ScheduleTask,
        log: TaskLog,
        handler: ItemHandler,
        dates: Optional[List[str]] = None,
    ) -> int:
        """Process the backlog of ``schedule`` and return the success count."""
        config = schedule.config or {}
        target_fields = resolve_target_fields(config)
        dates = dates or window_dates(self._settings.timezone, self._settings.lookback_days)

        work = await self.collect(target_fields, dates)
        if not work:
            logger.info(f"No items need processing for {schedule.name}")
            await self._recorder.update_progress(log, 100)
            return 0

        concurrency = int(config.get("concurrency") or self._settings.default_concurrency)
        delay_ms = config.get("delay")
        if delay_ms is None:
            delay_ms = self._settings.default_delay_ms
        delay = max(0.0, float(delay_ms) / 1000)

        queue: asyncio.Queue[Tuple[int, WorkItem]] = asyncio.Queue()
        for position, entry in enumerate(work):
            queue.put_nowait((position, entry))

        total = len(work)
        processed = 0
        completed = 0
        updated: Dict[Tuple[str, str], List[ContentItem]] = defaultdict(list)
        label = f"{schedule.type.value} -> {','.join(target_fields)}"

        async def worker(index: int) -> None:
            nonlocal processed, completed
            if index > 0 and self._settings.stagger_seconds > 0:
                await asyncio.sleep(index * self._settings.stagger_seconds)

            while True:
                try:
                    position, entry = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return

                item = entry.item
                logger.info(f"[{position + 1}/{total}] Processing item [{label}]: {item.title}")
                succeeded = False
                try:
                    result = await handler(item, entry.date)
                    try:
                        parsed = parse_json_object(to_input_text(result))
                    except ValueError as e:
                        logger.warning(f"Failed to parse AI response for item {item.id}: {e}")
                    else:
                        if apply_result(item, parsed, target_fields):
                            updated[(entry.date, entry.adapter_name)].append(item)
                            processed += 1
                            succeeded = True
                        else:
                            logger.warning(
                                f"Response for item {item.id} sets none of the target fields "
                                f"{target_fields} (keys: {sorted(parsed)})"
                            )
                except Exception as e:
                    logger.error(f"Failed to process item {item.id} in {schedule.name}: {e}")

                completed += 1
                await self._recorder.update_progress(log, _percent(completed, total))

                if succeeded and delay > 0 and not queue.empty():
                    await asyncio.sleep(delay)

        pool_size = min(max(1, concurrency), total)
        await asyncio.gather(*(worker(i) for i in range(pool_size)))

        for (day, adapter_name), items in updated.items():
            await self._repository.save_items_batch(items, day, adapter_name)

        return processed
