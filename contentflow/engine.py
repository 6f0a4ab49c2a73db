"""Workflow execution engine for contentflow."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Set

from .constants import LOG_PREVIEW_CHARS, START_KEY
from .contracts import AgentRunner, ExecutorKind, SkillRunner, WorkflowDefinition, WorkflowStep
from .errors import CollaboratorUnavailableError, WorkflowNotFoundError
from .graph import DependencyGraph, build_dependency_graph, ensure_acyclic
from .resolver import resolve_step_input

if TYPE_CHECKING:
    from .persistence import Repository

logger = logging.getLogger(__name__)


def to_input_text(value: Any) -> str:
    """Render a step payload as the text handed to an agent or skill."""
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    return json.dumps(value, ensure_ascii=False, default=str)


def _preview(value: Any) -> str:
    text = to_input_text(value)
    if len(text) > LOG_PREVIEW_CHARS:
        return f"{text[:LOG_PREVIEW_CHARS]}...(truncated)"
    return text


class WorkflowEngine:
    """Runs workflow definitions as parallel topological batches.

    Every step whose predecessors have all settled joins the next batch, and
    a whole batch runs concurrently before any successor is considered. A
    failing step records ``{"error": message}`` as its output instead of
    aborting the run.
    """

    def __init__(
        self,
        repository: Repository,
        agent_runner: AgentRunner | None = None,
        skill_runner: SkillRunner | None = None,
    ) -> None:
        self._repository = repository
        self._agent_runner = agent_runner
        self._skill_runner = skill_runner

    async def run_workflow(
        self, workflow_id: str, initial_input: Any, date: Optional[str] = None
    ) -> Any:
        """Load ``workflow_id`` and run it with ``initial_input`` as ``"start"``."""
        workflow = await self._repository.get_workflow(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        return await self.run_definition(workflow, initial_input, date)

    async def run_definition(
        self, workflow: WorkflowDefinition, initial_input: Any, date: Optional[str] = None
    ) -> Any:
        logger.info(
            f"Starting workflow: {workflow.name or workflow.id}"
            + (f" for date: {date}" if date else "")
        )
        graph = ensure_acyclic(workflow, build_dependency_graph(workflow))
        steps = {step.id: step for step in workflow.steps}

        outputs: Dict[str, Any] = {START_KEY: initial_input}
        succeeded: Set[str] = set()
        in_degree = graph.in_degrees()
        ready: List[str] = [step.id for step in workflow.steps if in_degree[step.id] == 0]

        while ready:
            logger.info(f"Parallel batch: [{', '.join(ready)}]")
            results = await asyncio.gather(
                *(
                    self._execute_step(steps[step_id], outputs, graph.predecessors[step_id], date)
                    for step_id in ready
                ),
                return_exceptions=True,
            )

            next_ready: List[str] = []
            for step_id, result in zip(ready, results):
                if isinstance(result, BaseException):
                    if isinstance(result, asyncio.CancelledError):
                        raise result
                    logger.error(f"Workflow step {step_id} failed: {result}")
                    outputs[step_id] = {"error": str(result)}
                else:
                    outputs[step_id] = result
                    succeeded.add(step_id)

                for next_id in graph.successors[step_id]:
                    in_degree[next_id] -= 1
                    if in_degree[next_id] == 0:
                        next_ready.append(next_id)
            ready = next_ready

        return self._final_output(graph, outputs, succeeded)

    @staticmethod
    def _final_output(
        graph: DependencyGraph, outputs: Dict[str, Any], succeeded: Set[str]
    ) -> Any:
        terminals = [step_id for step_id in graph.terminal_steps() if step_id in succeeded]
        if not terminals:
            return None
        if len(graph.terminal_steps()) == 1:
            return outputs[terminals[0]]
        return {step_id: outputs[step_id] for step_id in terminals}

    async def _execute_step(
        self,
        step: WorkflowStep,
        outputs: Dict[str, Any],
        predecessors: List[str],
        date: Optional[str],
    ) -> Any:
        logger.info(f"Executing workflow step: {step.id}")
        step_input = resolve_step_input(step, outputs, predecessors)
        logger.info(f"[Workflow {step.id}] Input: {_preview(step_input)}")

        output = await self._dispatch(step, step_input, date)

        logger.info(f"[Workflow {step.id}] Output: {_preview(output)}")
        return output

    async def _dispatch(self, step: WorkflowStep, step_input: Any, date: Optional[str]) -> Any:
        executor = step.executor
        if executor is None:
            return None

        if executor.kind is ExecutorKind.AGENT:
            if self._agent_runner is None:
                raise CollaboratorUnavailableError("No agent runner configured")
            result = await self._agent_runner.run_agent(
                executor.id, to_input_text(step_input), date, {"silent": True}
            )
            return result.content
        if executor.kind is ExecutorKind.WORKFLOW:
            return await self.run_workflow(executor.id, step_input, date)
        if executor.kind is ExecutorKind.SKILL:
            if self._skill_runner is None:
                raise CollaboratorUnavailableError("No skill runner configured")
            return await self._skill_runner.run_skill(
                executor.id, to_input_text(step_input), date
            )
        raise ValueError(f"Unsupported executor kind: {executor.kind}")
