"""Storage backends for schedules, run logs, workflows and content items."""

from __future__ import annotations

from typing import Optional

from ..config import ContentflowConfig, load_config
from .inmemory import InMemoryRepository
from .models import ContentItem, ScheduleTask, ScheduleType, TaskLog, TaskStatus
from .repository import INTERRUPTED_MESSAGE, Repository
from .sqlite import SQLiteRepository

try:  # pragma: no cover - optional dependency
    from .postgres import PostgresRepository
except ImportError:  # pragma: no cover - optional dependency
    PostgresRepository = None  # type: ignore

_repository_instance: Repository | None = None


def create_repository(database_url: Optional[str]) -> Repository:
    """Build the backend addressed by ``database_url``.

    ``None`` or an empty url gives an in-memory store, ``sqlite://<path>`` a
    SQLite file and ``postgres://`` / ``postgresql://`` an asyncpg-backed
    store.
    """

    if not database_url:
        return InMemoryRepository()

    scheme, _, location = database_url.partition("://")
    if scheme == "sqlite":
        return SQLiteRepository(location)
    if scheme in ("postgres", "postgresql"):
        if PostgresRepository is None:
            raise RuntimeError("Postgres support not available")
        return PostgresRepository(database_url)
    raise ValueError(f"Unsupported database backend: {database_url}")


def get_repository(
    database_url: Optional[str] = None, config: Optional[ContentflowConfig] = None
) -> Repository:
    """Return the shared repository, creating it on first use.

    Without arguments the url comes from loaded configuration, where
    ``CONTENTFLOW_DATABASE_URL`` and ``DATABASE_URL`` take precedence over
    the config file. An explicit ``database_url`` or ``config`` always builds
    a new repository, which replaces the shared one.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    url = database_url or (config or load_config()).database_url
    _repository_instance = create_repository(url)
    return _repository_instance


__all__ = [
    "ContentItem",
    "INTERRUPTED_MESSAGE",
    "InMemoryRepository",
    "PostgresRepository",
    "Repository",
    "SQLiteRepository",
    "ScheduleTask",
    "ScheduleType",
    "TaskLog",
    "TaskStatus",
    "create_repository",
    "get_repository",
]
