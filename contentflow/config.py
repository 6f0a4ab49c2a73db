from __future__ import annotations

import os
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import BaseModel, field_validator

from .constants import (
    DEFAULT_AGENT_ID,
    DEFAULT_CONCURRENCY,
    DEFAULT_DELAY_MS,
    DEFAULT_LOG_PAGE_SIZE,
    DEFAULT_LOOKBACK_DAYS,
    DEFAULT_STAGGER_SECONDS,
    DEFAULT_TIMEZONE,
)


class SchedulerConfig(BaseModel):
    """Defaults applied to scheduled runs when a schedule's config is silent."""

    timezone: str = DEFAULT_TIMEZONE
    default_concurrency: int = DEFAULT_CONCURRENCY
    default_delay_ms: int = DEFAULT_DELAY_MS
    stagger_seconds: float = DEFAULT_STAGGER_SECONDS
    lookback_days: int = DEFAULT_LOOKBACK_DAYS
    default_agent_id: str = DEFAULT_AGENT_ID
    log_page_size: int = DEFAULT_LOG_PAGE_SIZE

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value


class ContentflowConfig(BaseModel):
    """Top-level configuration model."""

    scheduler: SchedulerConfig = SchedulerConfig()
    database_url: Optional[str] = None
    log_level: str = "INFO"


def load_config(path: Optional[str] = None) -> ContentflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to CONTENTFLOW_CONFIG env
            variable or 'config.yaml' in the current directory.

    ``CONTENTFLOW_DATABASE_URL`` (or ``DATABASE_URL``), ``CONTENTFLOW_TIMEZONE``
    and ``CONTENTFLOW_LOG_LEVEL`` override the file.
    """

    config_path = path or os.getenv("CONTENTFLOW_CONFIG", "config.yaml")
    data: dict = {}
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

    env_db_url = os.getenv("CONTENTFLOW_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        data["database_url"] = env_db_url
    if os.getenv("CONTENTFLOW_LOG_LEVEL"):
        data["log_level"] = os.environ["CONTENTFLOW_LOG_LEVEL"]
    if os.getenv("CONTENTFLOW_TIMEZONE"):
        scheduler = dict(data.get("scheduler") or {})
        scheduler["timezone"] = os.environ["CONTENTFLOW_TIMEZONE"]
        data["scheduler"] = scheduler

    return ContentflowConfig.model_validate(data)
