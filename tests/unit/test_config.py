"""Tests for configuration loading."""

import pytest

import contentflow.persistence as persistence
from contentflow.config import load_config
from contentflow.persistence import InMemoryRepository, SQLiteRepository, get_repository


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
log_level: DEBUG
scheduler:
  timezone: Europe/Berlin
  default_concurrency: 5
  lookback_days: 3
"""
    )
    monkeypatch.setenv("CONTENTFLOW_CONFIG", str(config_path))
    monkeypatch.delenv("CONTENTFLOW_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)

    config = load_config()
    assert config.log_level == "DEBUG"
    assert config.scheduler.timezone == "Europe/Berlin"
    assert config.scheduler.default_concurrency == 5
    assert config.scheduler.lookback_days == 3
    assert config.scheduler.default_delay_ms == 500
    assert config.database_url is None


def test_defaults_without_config_file(tmp_path, monkeypatch):
    monkeypatch.setenv("CONTENTFLOW_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.delenv("CONTENTFLOW_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)

    config = load_config()
    assert config.scheduler.timezone == "Asia/Shanghai"
    assert config.scheduler.default_concurrency == 3
    assert config.scheduler.stagger_seconds == 0.2
    assert config.scheduler.default_agent_id == "default_summarizer"


def test_database_url_env_override(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("database_url: sqlite://ignored.db\n")
    monkeypatch.setenv("CONTENTFLOW_CONFIG", str(config_path))
    monkeypatch.setenv("CONTENTFLOW_DATABASE_URL", f"sqlite://{tmp_path / 'env.db'}")

    assert load_config().database_url == f"sqlite://{tmp_path / 'env.db'}"


def test_get_repository_selects_backend(tmp_path, monkeypatch):
    monkeypatch.setenv("CONTENTFLOW_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.delenv("CONTENTFLOW_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setattr(persistence, "_repository_instance", None)

    assert isinstance(get_repository(), InMemoryRepository)
    assert get_repository() is get_repository()

    repo = get_repository(f"sqlite://{tmp_path / 'cf.db'}")
    assert isinstance(repo, SQLiteRepository)
    assert (tmp_path / "cf.db").exists()


def test_get_repository_rejects_unknown_scheme(monkeypatch):
    monkeypatch.setattr(persistence, "_repository_instance", None)
    with pytest.raises(ValueError, match="Unsupported database backend"):
        get_repository("mongodb://localhost")


def test_scheduler_env_overrides(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("scheduler:\n  timezone: UTC\n  lookback_days: 5\n")
    monkeypatch.setenv("CONTENTFLOW_CONFIG", str(config_path))
    monkeypatch.setenv("CONTENTFLOW_TIMEZONE", "America/New_York")
    monkeypatch.setenv("CONTENTFLOW_LOG_LEVEL", "WARNING")

    config = load_config()
    assert config.scheduler.timezone == "America/New_York"
    assert config.scheduler.lookback_days == 5
    assert config.log_level == "WARNING"


def test_unknown_timezone_is_rejected(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("scheduler:\n  timezone: Mars/Olympus\n")

    with pytest.raises(ValueError, match="Unknown timezone"):
        load_config(str(config_path))
