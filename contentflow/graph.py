"""Dependency graph construction for workflow definitions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List

from .constants import START_KEY
from .contracts import WorkflowDefinition
from .errors import WorkflowCycleError


@dataclass
class DependencyGraph:
    """Predecessor and successor lists keyed by step id."""

    predecessors: Dict[str, List[str]]
    successors: Dict[str, List[str]]

    def in_degrees(self) -> Dict[str, int]:
        return {step_id: len(preds) for step_id, preds in self.predecessors.items()}

    def terminal_steps(self) -> List[str]:
        """Steps nothing depends on, in definition order."""
        return [step_id for step_id, succs in self.successors.items() if not succs]


def _add_edge(graph: DependencyGraph, source: str, target: str) -> None:
    preds = graph.predecessors[target]
    if source not in preds:
        preds.append(source)
    succs = graph.successors[source]
    if target not in succs:
        succs.append(target)


def build_dependency_graph(definition: WorkflowDefinition) -> DependencyGraph:
    """Derive the step DAG from ``next_step_ids`` and ``input_map`` references.

    Both edge sources are unioned without duplicates. References to ids that
    are not steps of ``definition`` are ignored, as is the ``"start"``
    sentinel.
    """

    step_ids = [step.id for step in definition.steps]
    known = set(step_ids)
    graph = DependencyGraph(
        predecessors={step_id: [] for step_id in step_ids},
        successors={step_id: [] for step_id in step_ids},
    )

    for step in definition.steps:
        for next_id in step.next_step_ids:
            if next_id in known:
                _add_edge(graph, step.id, next_id)

    for step in definition.steps:
        for source_id in step.input_map.values():
            if not source_id or source_id == START_KEY:
                continue
            if source_id in known:
                _add_edge(graph, source_id, step.id)

    return graph


def find_cycle(graph: DependencyGraph) -> List[str]:
    """Return the steps that can never become ready.

    Runs Kahn's algorithm to exhaustion; whatever keeps a nonzero in-degree
    sits on, or downstream of, a cycle. An empty list means the graph is a DAG.
    """

    in_degree = graph.in_degrees()
    ready = [step_id for step_id, degree in in_degree.items() if degree == 0]
    while ready:
        step_id = ready.pop()
        for succ in graph.successors[step_id]:
            in_degree[succ] -= 1
            if in_degree[succ] == 0:
                ready.append(succ)
    return [step_id for step_id, degree in in_degree.items() if degree > 0]


def ensure_acyclic(
    definition: WorkflowDefinition, graph: DependencyGraph | None = None
) -> DependencyGraph:
    """Build (or reuse) the graph of ``definition`` and reject cycles."""
    graph = graph or build_dependency_graph(definition)
    stuck = find_cycle(graph)
    if stuck:
        raise WorkflowCycleError(definition.id, stuck)
    return graph
