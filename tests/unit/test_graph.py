import pytest

from contentflow.contracts import WorkflowDefinition
from contentflow.errors import WorkflowCycleError
from contentflow.graph import build_dependency_graph, ensure_acyclic, find_cycle


def _definition(steps):
    return WorkflowDefinition.model_validate({"id": "wf", "steps": steps})


def test_next_step_ids_and_input_map_edges_are_unioned():
    definition = _definition(
        [
            {"id": "A", "nextStepIds": ["B", "C"]},
            {"id": "B", "nextStepIds": ["D"]},
            {"id": "C"},
            {"id": "D", "inputMap": {"left": "B", "right": "C"}},
        ]
    )

    graph = build_dependency_graph(definition)

    assert graph.predecessors == {"A": [], "B": ["A"], "C": ["A"], "D": ["B", "C"]}
    assert graph.successors == {"A": ["B", "C"], "B": ["D"], "C": ["D"], "D": []}
    assert graph.terminal_steps() == ["D"]


def test_start_and_unknown_references_are_ignored():
    definition = _definition(
        [
            {"id": "A", "inputMap": {"text": "start"}, "nextStepIds": ["ghost"]},
            {"id": "B", "inputMap": {"x": "missing", "y": "A"}},
        ]
    )

    graph = build_dependency_graph(definition)

    assert graph.predecessors == {"A": [], "B": ["A"]}
    assert graph.in_degrees() == {"A": 0, "B": 1}


def test_find_cycle_reports_stuck_steps():
    definition = _definition(
        [
            {"id": "A", "nextStepIds": ["B"]},
            {"id": "B", "nextStepIds": ["C"]},
            {"id": "C", "nextStepIds": ["B"]},
        ]
    )

    graph = build_dependency_graph(definition)

    assert sorted(find_cycle(graph)) == ["B", "C"]


def test_ensure_acyclic_raises_for_cycles():
    definition = _definition(
        [
            {"id": "A", "nextStepIds": ["B"]},
            {"id": "B", "nextStepIds": ["A"]},
        ]
    )

    with pytest.raises(WorkflowCycleError) as excinfo:
        ensure_acyclic(definition)

    assert sorted(excinfo.value.step_ids) == ["A", "B"]
    assert "wf" in str(excinfo.value)


def test_ensure_acyclic_returns_graph_for_dag():
    definition = _definition([{"id": "A", "nextStepIds": ["B"]}, {"id": "B"}])

    graph = ensure_acyclic(definition)

    assert graph.successors["A"] == ["B"]
