"""Input resolution for workflow steps."""

from __future__ import annotations

from typing import Any, Dict, List

from .constants import START_KEY
from .contracts import WorkflowStep


def resolve_step_input(
    step: WorkflowStep, outputs: Dict[str, Any], predecessors: List[str]
) -> Any:
    """Compute the payload handed to ``step``'s executor.

    An explicit ``input_map`` wins: each parameter gets the referenced
    output, and a single parameter is unwrapped to its bare value. Without a
    map the shape follows the number of predecessors: none gets the
    workflow's initial input, one gets that predecessor's output, several get
    a dict keyed by predecessor id.
    """

    valid_map = {name: source for name, source in step.input_map.items() if name and source}
    if valid_map:
        mapped = {name: outputs.get(source) for name, source in valid_map.items()}
        if len(mapped) == 1:
            return next(iter(mapped.values()))
        return mapped

    if not predecessors:
        return outputs.get(START_KEY)
    if len(predecessors) == 1:
        return outputs.get(predecessors[0])
    return {pred_id: outputs.get(pred_id) for pred_id in predecessors}
