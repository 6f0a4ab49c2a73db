"""Command line interface for contentflow schedules and workflows."""

from __future__ import annotations

import asyncio
import importlib
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional
from zoneinfo import ZoneInfo

import typer
import yaml
from pydantic import ValidationError

from contentflow import WorkflowDefinition, WorkflowEngine, get_repository, load_config
from contentflow.agent import PydanticAIAgentRunner
from contentflow.errors import ContentflowError
from contentflow.graph import build_dependency_graph, find_cycle
from contentflow.persistence import ScheduleTask, TaskStatus
from contentflow.scheduler import ScheduleService, next_fire_time, validate_cron

app = typer.Typer(help="CLI for contentflow schedules and workflows")

# Command groups
schedule_app = typer.Typer(help="Commands for managing schedules")
workflow_app = typer.Typer(help="Commands for managing workflows")

app.add_typer(schedule_app, name="schedule")
app.add_typer(workflow_app, name="workflow")


@app.callback()
def main() -> None:
    """contentflow CLI entry point."""
    pass


def _read_document(path: Path) -> Any:
    text = path.read_text()
    if path.suffix == ".json":
        return json.loads(text)
    return yaml.safe_load(text)


def _load_agents(target: Optional[str]) -> PydanticAIAgentRunner:
    """Import ``module:attribute`` holding a mapping of agent id to Agent."""
    if not target:
        return PydanticAIAgentRunner()
    module_name, _, attribute = target.partition(":")
    module = importlib.import_module(module_name)
    agents = getattr(module, attribute or "AGENTS")
    return PydanticAIAgentRunner(agents)


def _build_service(agents: Optional[str]) -> ScheduleService:
    config = load_config()
    repository = get_repository()
    agent_runner = _load_agents(agents)
    engine = WorkflowEngine(repository, agent_runner=agent_runner)
    return ScheduleService(
        repository,
        workflow_runner=engine,
        agent_runner=agent_runner,
        settings=config.scheduler,
    )


@schedule_app.command("list")
def schedule_list() -> None:
    """List all schedules with their cron expression and last outcome."""
    repo = get_repository()
    schedules = asyncio.run(repo.list_schedules())
    if not schedules:
        typer.echo("No schedules found")
        return
    for schedule in schedules:
        state = "enabled" if schedule.enabled else "disabled"
        last = schedule.last_status.value if schedule.last_status else "never run"
        typer.echo(
            f"{schedule.id}\t{schedule.name}\t{schedule.cron_expression}\t"
            f"{schedule.type.value}\t{state}\t{last}"
        )


@schedule_app.command("show")
def schedule_show(schedule_id: str) -> None:
    """Show one schedule, including its last run and error."""
    repo = get_repository()
    schedule = asyncio.run(repo.get_schedule(schedule_id))
    if schedule is None:
        typer.echo("Schedule not found")
        raise typer.Exit(code=1)
    typer.echo(f"Schedule {schedule.id}: {schedule.name}")
    typer.echo(f"Cron: {schedule.cron_expression}")
    typer.echo(f"Type: {schedule.type.value} -> {schedule.target_id or '(none)'}")
    typer.echo(f"Enabled: {schedule.enabled}")
    if schedule.config:
        typer.echo(f"Config: {json.dumps(schedule.config, ensure_ascii=False)}")
    if schedule.last_run:
        typer.echo(
            f"Last run: {schedule.last_run.isoformat()} "
            f"({schedule.last_status.value if schedule.last_status else 'unknown'})"
        )
    if schedule.last_error:
        typer.echo(f"Last error: {schedule.last_error}")


@schedule_app.command("add")
def schedule_add(path: Path) -> None:
    """
    Create or update schedules from a YAML or JSON file.

    The file holds one schedule mapping or a list of them. Schedules with an
    invalid cron expression are stored but reported, since they will not be
    installed when the scheduler starts.

    Example:
        contentflow schedule add ./schedules.yaml
    """
    if not path.exists():
        typer.secho("Specified path does not exist", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    data = _read_document(path)
    entries = data if isinstance(data, list) else [data]
    try:
        schedules = [ScheduleTask.model_validate(entry) for entry in entries]
    except ValidationError as exc:
        typer.secho(f"Invalid schedule definition: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    repo = get_repository()
    for schedule in schedules:
        asyncio.run(repo.save_schedule(schedule))
        typer.echo(f"Saved schedule {schedule.id}")
        if not validate_cron(schedule.cron_expression):
            typer.secho(
                f"  Invalid cron expression: {schedule.cron_expression}",
                fg=typer.colors.YELLOW,
            )


@schedule_app.command("delete")
def schedule_delete(schedule_id: str) -> None:
    """Delete a schedule record."""
    repo = get_repository()
    asyncio.run(repo.delete_schedule(schedule_id))
    typer.echo(f"Deleted schedule {schedule_id}")


@schedule_app.command("logs")
def schedule_logs(
    task_id: Optional[str] = typer.Option(None, help="Only show runs of this schedule"),
    limit: int = typer.Option(50, help="Maximum number of rows"),
    offset: int = typer.Option(0, help="Number of rows to skip"),
) -> None:
    """
    List run logs, newest first.

    Example:
        contentflow schedule logs --task-id daily-summary --limit 10
        # Output: 12  daily-summary  success  100%  42 items  2024-01-01T06:00:00+00:00
    """
    repo = get_repository()
    logs = asyncio.run(repo.list_task_logs(task_id=task_id, limit=limit, offset=offset))
    if not logs:
        typer.echo("No task logs found")
        return
    for log in logs:
        line = (
            f"{log.id}\t{log.task_id}\t{log.status.value}\t{log.progress}%\t"
            f"{log.result_count or 0} items\t{log.start_time.isoformat()}"
        )
        if log.message:
            line += f"\t{log.message}"
        typer.echo(line)


@schedule_app.command("run")
def schedule_run(
    schedule_id: str,
    agents: Optional[str] = typer.Option(
        None, help="module:attribute holding a mapping of agent id to pydantic-ai Agent"
    ),
) -> None:
    """Run a schedule once, in the foreground, and print its log."""
    service = _build_service(agents)
    try:
        log = asyncio.run(service.scheduler.run_now(schedule_id))
    except ContentflowError as exc:
        typer.echo(str(exc))
        raise typer.Exit(code=1)
    typer.echo(f"Run {log.id}: {log.status.value} ({log.duration}ms)")
    if log.message:
        typer.echo(log.message)
    if log.status != TaskStatus.SUCCESS:
        raise typer.Exit(code=1)


@schedule_app.command("validate-cron")
def schedule_validate_cron(expression: str) -> None:
    """Check a cron expression and print its next fire time."""
    if not validate_cron(expression):
        typer.secho(f"Invalid cron expression: {expression}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    config = load_config()
    now = datetime.now(ZoneInfo(config.scheduler.timezone))
    typer.echo(f"Next run: {next_fire_time(expression, now).isoformat()}")


@workflow_app.command("check")
def workflow_check(path: Path) -> None:
    """
    Validate a workflow definition file and print its dependency graph.

    Exits with code 1 when the definition is malformed or cyclic.

    Example:
        contentflow workflow check ./workflows/digest.yaml
        # Output: Workflow digest: 3 steps
        #         fetch -> summarize
        #         summarize -> (terminal)
    """
    if not path.exists():
        typer.secho("Specified path does not exist", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    try:
        definition = WorkflowDefinition.model_validate(_read_document(path))
    except ValidationError as exc:
        typer.secho(f"Invalid workflow definition: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    graph = build_dependency_graph(definition)
    typer.echo(f"Workflow {definition.id}: {len(definition.steps)} steps")
    for step_id, successors in graph.successors.items():
        typer.echo(f"{step_id} -> {', '.join(successors) if successors else '(terminal)'}")

    stuck = find_cycle(graph)
    if stuck:
        typer.secho(f"Cyclic dependencies between: {', '.join(stuck)}", fg=typer.colors.RED)
        raise typer.Exit(code=1)


@workflow_app.command("import")
def workflow_import(path: Path) -> None:
    """Store a workflow definition file in the configured repository."""
    try:
        definition = WorkflowDefinition.model_validate(_read_document(path))
        asyncio.run(get_repository().save_workflow(definition))
    except (ValidationError, ContentflowError) as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Saved workflow {definition.id}")


@workflow_app.command("run")
def workflow_run(
    workflow_id: str,
    input: Optional[str] = typer.Option(None, help="JSON encoded initial input"),
    date: Optional[str] = typer.Option(None, help="Processing date passed to steps"),
    agents: Optional[str] = typer.Option(
        None, help="module:attribute holding a mapping of agent id to pydantic-ai Agent"
    ),
) -> None:
    """Run a stored workflow once and print its final output."""
    initial_input: Any = None
    if input is not None:
        try:
            initial_input = json.loads(input)
        except json.JSONDecodeError:
            initial_input = input

    engine = WorkflowEngine(get_repository(), agent_runner=_load_agents(agents))
    try:
        output = asyncio.run(engine.run_workflow(workflow_id, initial_input, date))
    except ContentflowError as exc:
        typer.echo(str(exc))
        raise typer.Exit(code=1)
    typer.echo(output if isinstance(output, str) else json.dumps(output, ensure_ascii=False))


@app.command("serve")
def serve(
    agents: Optional[str] = typer.Option(
        None, help="module:attribute holding a mapping of agent id to pydantic-ai Agent"
    ),
    lifespan: Optional[float] = typer.Option(
        None, help="Seconds to run before shutting down (default: run indefinitely)"
    ),
) -> None:
    """
    Start the scheduler and run installed schedules until stopped.

    Example:
        contentflow serve --agents my_project.agents:AGENTS
        contentflow serve --lifespan 300
    """
    config = load_config()
    logging.basicConfig(level=config.log_level.upper())
    service = _build_service(agents)

    async def _serve() -> None:
        await service.start()
        try:
            if lifespan is None:
                await asyncio.Event().wait()
            else:
                await asyncio.sleep(lifespan)
        finally:
            await service.shutdown(wait=True)

    typer.echo("Starting scheduler")
    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        typer.echo("Scheduler stopped")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
