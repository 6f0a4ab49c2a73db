"""Shared constants for contentflow."""

START_KEY = "start"

DEFAULT_TIMEZONE = "Asia/Shanghai"
DEFAULT_CONCURRENCY = 3
DEFAULT_DELAY_MS = 500
DEFAULT_STAGGER_SECONDS = 0.2
DEFAULT_LOOKBACK_DAYS = 2
DEFAULT_AGENT_ID = "default_summarizer"
DEFAULT_TARGET_FIELD = "ai_summary"
DEFAULT_LOG_PAGE_SIZE = 50

LOG_PREVIEW_CHARS = 1000
