import asyncio
import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

import contentflow.persistence as persistence
from contentflow.cli import app
from contentflow.contracts import WorkflowDefinition
from contentflow.persistence import InMemoryRepository

FIXTURES = Path(__file__).parent.parent / "fixtures"

DIAMOND = """
id: digest
name: Daily digest
steps:
  - id: fetch
    agentId: echo
    nextStepIds: [summarize, classify]
  - id: summarize
    agentId: echo
  - id: classify
    agentId: echo
  - id: merge
    agentId: echo
    inputMap:
      summary: summarize
      labels: classify
"""


@pytest.fixture(autouse=True)
def fixtures_on_path(monkeypatch, tmp_path):
    monkeypatch.setenv("CONTENTFLOW_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.syspath_prepend(str(FIXTURES))


def _setup_repo() -> InMemoryRepository:
    repo = InMemoryRepository()
    persistence._repository_instance = repo
    return repo


def test_workflow_check_prints_graph(tmp_path):
    path = tmp_path / "digest.yaml"
    path.write_text(DIAMOND)

    result = CliRunner().invoke(app, ["workflow", "check", str(path)])

    assert result.exit_code == 0, result.stdout
    assert "Workflow digest: 4 steps" in result.stdout
    assert "fetch -> summarize, classify" in result.stdout
    assert "merge -> (terminal)" in result.stdout


def test_workflow_check_reports_cycles(tmp_path):
    path = tmp_path / "loop.json"
    path.write_text(
        json.dumps(
            {
                "id": "loop",
                "steps": [
                    {"id": "a", "nextStepIds": ["b"]},
                    {"id": "b", "nextStepId": "a"},
                ],
            }
        )
    )

    result = CliRunner().invoke(app, ["workflow", "check", str(path)])

    assert result.exit_code == 1
    assert "Cyclic dependencies between: a, b" in result.stdout


def test_workflow_check_missing_file(tmp_path):
    result = CliRunner().invoke(app, ["workflow", "check", str(tmp_path / "nope.yaml")])
    assert result.exit_code == 1
    assert "Specified path does not exist" in result.stdout


def test_workflow_import_and_run(tmp_path):
    repo = _setup_repo()
    path = tmp_path / "digest.yaml"
    path.write_text(DIAMOND)
    runner = CliRunner()

    imported = runner.invoke(app, ["workflow", "import", str(path)])
    assert imported.exit_code == 0, imported.stdout
    assert isinstance(asyncio.run(repo.get_workflow("digest")), WorkflowDefinition)

    result = runner.invoke(
        app,
        ["workflow", "run", "digest", "--input", '"news"', "--agents", "echo_agents:AGENTS"],
    )

    assert result.exit_code == 0, result.stdout
    output = result.stdout.strip()
    assert output.startswith("echo:")
    merged = json.loads(output.removeprefix("echo:"))
    assert merged == {"summary": "echo:echo:news", "labels": "echo:echo:news"}


def test_workflow_import_rejects_cycle(tmp_path):
    repo = _setup_repo()
    path = tmp_path / "loop.yaml"
    path.write_text("id: loop\nsteps:\n  - id: a\n    nextStepIds: [a]\n")

    result = CliRunner().invoke(app, ["workflow", "import", str(path)])

    assert result.exit_code == 1
    assert "cyclic dependencies" in result.stdout
    assert asyncio.run(repo.get_workflow("loop")) is None


def test_workflow_run_unknown():
    _setup_repo()
    result = CliRunner().invoke(app, ["workflow", "run", "ghost"])
    assert result.exit_code == 1
    assert "Workflow ghost not found" in result.stdout
