import asyncio
from datetime import datetime, timezone
from pathlib import Path

import pytest
from typer.testing import CliRunner

import contentflow.persistence as persistence
from contentflow.cli import app
from contentflow.persistence import (
    ContentItem,
    InMemoryRepository,
    ScheduleTask,
    ScheduleType,
    TaskLog,
    TaskStatus,
)
from contentflow.scheduler.processor import window_dates

FIXTURES = Path(__file__).parent.parent / "fixtures"


@pytest.fixture(autouse=True)
def cli_config(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
scheduler:
  timezone: UTC
  stagger_seconds: 0
  default_delay_ms: 0
"""
    )
    monkeypatch.setenv("CONTENTFLOW_CONFIG", str(config_path))
    monkeypatch.syspath_prepend(str(FIXTURES))


def _setup_repo() -> InMemoryRepository:
    repo = InMemoryRepository()
    persistence._repository_instance = repo
    return repo


def _schedule(
    schedule_id="digest", schedule_type=ScheduleType.AGENT_DEAL, **extra
) -> ScheduleTask:
    return ScheduleTask(
        id=schedule_id,
        name="Daily digest",
        cron_expression="0 8 * * *",
        type=schedule_type,
        **extra,
    )


def test_schedule_list_shows_schedules():
    repo = _setup_repo()
    runner = CliRunner()

    result = runner.invoke(app, ["schedule", "list"])
    assert result.exit_code == 0
    assert "No schedules found" in result.stdout

    asyncio.run(repo.save_schedule(_schedule()))
    asyncio.run(repo.save_schedule(_schedule("nightly", enabled=False)))

    result = runner.invoke(app, ["schedule", "list"])
    assert result.exit_code == 0, result.stdout
    assert "digest" in result.stdout
    assert "nightly" in result.stdout
    assert "disabled" in result.stdout
    assert "never run" in result.stdout


def test_schedule_show_details_and_missing():
    repo = _setup_repo()
    asyncio.run(
        repo.save_schedule(
            _schedule(
                target_id="summarizer",
                last_status=TaskStatus.ERROR,
                last_error="model timeout",
                last_run=datetime(2024, 1, 1, 8, tzinfo=timezone.utc),
            )
        )
    )
    runner = CliRunner()

    result = runner.invoke(app, ["schedule", "show", "digest"])
    assert result.exit_code == 0, result.stdout
    assert "Cron: 0 8 * * *" in result.stdout
    assert "AGENT_DEAL -> summarizer" in result.stdout
    assert "Last error: model timeout" in result.stdout

    missing = runner.invoke(app, ["schedule", "show", "missing-id"])
    assert missing.exit_code == 1
    assert "Schedule not found" in missing.stdout


def test_schedule_add_from_yaml(tmp_path):
    repo = _setup_repo()
    path = tmp_path / "schedules.yaml"
    path.write_text(
        """
- id: hn
  name: Hacker News
  cron: "*/30 * * * *"
  type: ADAPTER
  targetId: hackernews
  config:
    limit: 30
- id: broken
  name: Broken
  cronExpression: "every day"
  type: FULL_INGESTION
"""
    )

    result = CliRunner().invoke(app, ["schedule", "add", str(path)])

    assert result.exit_code == 0, result.stdout
    assert "Saved schedule hn" in result.stdout
    assert "Invalid cron expression: every day" in result.stdout
    stored = asyncio.run(repo.get_schedule("hn"))
    assert stored.cron_expression == "*/30 * * * *"
    assert stored.target_id == "hackernews"
    assert stored.config == {"limit": 30}
    assert asyncio.run(repo.get_schedule("broken")) is not None


def test_schedule_delete():
    repo = _setup_repo()
    asyncio.run(repo.save_schedule(_schedule()))

    result = CliRunner().invoke(app, ["schedule", "delete", "digest"])

    assert result.exit_code == 0
    assert asyncio.run(repo.get_schedule("digest")) is None


def test_schedule_logs_filters_and_pages():
    repo = _setup_repo()
    for task_id in ("digest", "other", "digest"):
        asyncio.run(
            repo.create_task_log(
                TaskLog(
                    task_id=task_id,
                    start_time=datetime.now(timezone.utc),
                    status=TaskStatus.SUCCESS,
                    progress=100,
                    result_count=4,
                    message=f"run of {task_id}",
                )
            )
        )
    runner = CliRunner()

    result = runner.invoke(app, ["schedule", "logs", "--task-id", "digest"])
    assert result.exit_code == 0, result.stdout
    lines = result.stdout.strip().splitlines()
    assert [line.split("\t")[0] for line in lines] == ["3", "1"]
    assert "100%" in lines[0]
    assert "run of digest" in lines[0]

    paged = runner.invoke(app, ["schedule", "logs", "--limit", "1", "--offset", "1"])
    assert [line.split("\t")[0] for line in paged.stdout.strip().splitlines()] == ["2"]

    empty = runner.invoke(app, ["schedule", "logs", "--task-id", "nothing"])
    assert "No task logs found" in empty.stdout


def test_schedule_run_processes_items_with_agents():
    repo = _setup_repo()
    today = window_dates("UTC", 1)[0]
    asyncio.run(
        repo.save_items_batch(
            [ContentItem(id="1", title="Launch", url="https://x/1")], today, "hn"
        )
    )
    asyncio.run(repo.save_schedule(_schedule()))

    result = CliRunner().invoke(
        app, ["schedule", "run", "digest", "--agents", "echo_agents:AGENTS"]
    )

    assert result.exit_code == 0, result.stdout
    assert "success" in result.stdout
    assert "AI Processing completed for 1 items" in result.stdout
    [item] = asyncio.run(repo.list_items(today))
    assert item.metadata["ai_summary"] == "Summary of Launch"
    assert item.metadata["ai_score"] == 7
    assert asyncio.run(repo.get_schedule("digest")).last_status == TaskStatus.SUCCESS


def test_schedule_run_reports_failures():
    repo = _setup_repo()
    asyncio.run(repo.save_schedule(_schedule(schedule_type=ScheduleType.FULL_INGESTION)))
    runner = CliRunner()

    result = runner.invoke(app, ["schedule", "run", "digest"])
    assert result.exit_code == 1
    assert "error" in result.stdout
    assert "Ingestion runner not initialized" in result.stdout

    missing = runner.invoke(app, ["schedule", "run", "missing"])
    assert missing.exit_code == 1
    assert "Schedule missing not found" in missing.stdout


def test_validate_cron_command():
    _setup_repo()
    runner = CliRunner()

    ok = runner.invoke(app, ["schedule", "validate-cron", "0 6 * * *"])
    assert ok.exit_code == 0
    assert "Next run:" in ok.stdout
    assert "T06:00:00" in ok.stdout

    bad = runner.invoke(app, ["schedule", "validate-cron", "not-a-cron"])
    assert bad.exit_code == 1
    assert "Invalid cron expression" in bad.stdout


def test_serve_runs_for_lifespan():
    repo = _setup_repo()
    asyncio.run(repo.save_schedule(_schedule()))

    result = CliRunner().invoke(app, ["serve", "--lifespan", "0.05"])

    assert result.exit_code == 0, result.stdout
    assert "Starting scheduler" in result.stdout
