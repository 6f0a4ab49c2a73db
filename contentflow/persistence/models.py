"""Data models for persisted scheduling state."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class ScheduleType(str, Enum):
    ADAPTER = "ADAPTER"
    FULL_INGESTION = "FULL_INGESTION"
    WORKFLOW = "WORKFLOW"
    AGENT_DEAL = "AGENT_DEAL"


class TaskStatus(str, Enum):
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"
    INTERRUPTED = "interrupted"


class ScheduleTask(BaseModel):
    """A recurring job and the outcome of its last run."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str
    cron_expression: str
    type: ScheduleType
    target_id: str = ""
    config: dict[str, Any] = Field(default_factory=dict)
    enabled: bool = True
    last_run: Optional[datetime] = None
    last_status: Optional[TaskStatus] = None
    last_error: Optional[str] = None
    updated_at: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def _accept_cron_key(cls, data: Any) -> Any:
        if isinstance(data, dict) and "cron" in data:
            data = dict(data)
            cron = data.pop("cron")
            data.setdefault("cron_expression", cron)
        if isinstance(data, dict) and data.get("config") is None:
            data = {**data, "config": {}}
        return data


class TaskLog(BaseModel):
    """Record of one execution of a schedule."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: Optional[int] = None
    task_id: str
    task_name: str = ""
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: Optional[int] = None
    status: TaskStatus = TaskStatus.RUNNING
    progress: int = 0
    message: Optional[str] = None
    result_count: Optional[int] = None

    @property
    def is_finalized(self) -> bool:
        return self.status != TaskStatus.RUNNING


class ContentItem(BaseModel):
    """A stored content item produced by an ingestion adapter."""

    id: str
    title: str = ""
    url: str = ""
    description: str = ""
    published_date: Optional[str] = None
    source: str = ""
    category: str = ""
    author: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    ingestion_date: Optional[str] = None
    adapter_name: Optional[str] = None
