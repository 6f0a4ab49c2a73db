from contentflow.contracts import WorkflowStep
from contentflow.resolver import resolve_step_input


def test_root_step_receives_initial_input():
    step = WorkflowStep(id="A")
    assert resolve_step_input(step, {"start": "x"}, []) == "x"


def test_single_predecessor_output_is_passed_through():
    step = WorkflowStep(id="B")
    assert resolve_step_input(step, {"start": "x", "A": {"v": 1}}, ["A"]) == {"v": 1}


def test_multiple_predecessors_are_keyed_by_step_id():
    step = WorkflowStep(id="D")
    outputs = {"B": "b", "C": "c"}
    assert resolve_step_input(step, outputs, ["B", "C"]) == {"B": "b", "C": "c"}


def test_input_map_builds_named_parameters():
    step = WorkflowStep(id="D", input_map={"left": "B", "right": "C"})
    outputs = {"B": "b", "C": "c"}
    assert resolve_step_input(step, outputs, ["B", "C"]) == {"left": "b", "right": "c"}


def test_single_entry_input_map_is_unwrapped():
    step = WorkflowStep(id="B", input_map={"text": "start"})
    assert resolve_step_input(step, {"start": "hello", "A": "a"}, ["A"]) == "hello"


def test_blank_input_map_entries_fall_back_to_predecessors():
    step = WorkflowStep(id="B", input_map={"text": ""})
    assert resolve_step_input(step, {"A": "a"}, ["A"]) == "a"
