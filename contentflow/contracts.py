"""Core contracts for contentflow workflows and the capabilities they call."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class ExecutorKind(str, Enum):
    """What a workflow step hands its input to."""

    AGENT = "agent"
    WORKFLOW = "workflow"
    SKILL = "skill"


class ExecutorRef(BaseModel):
    """Reference to the capability that executes a step."""

    kind: ExecutorKind = ExecutorKind.AGENT
    id: str

    @classmethod
    def parse(cls, value: str) -> "ExecutorRef":
        """Parse ``"kind:id"`` notation; a bare id refers to an agent."""
        prefix, sep, rest = value.partition(":")
        if sep and prefix in {kind.value for kind in ExecutorKind}:
            return cls(kind=ExecutorKind(prefix), id=rest)
        return cls(kind=ExecutorKind.AGENT, id=value)


class WorkflowStep(BaseModel):
    """Defines one node of a workflow graph."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    executor: Optional[ExecutorRef] = None
    input_map: Dict[str, str] = Field(default_factory=dict)
    next_step_ids: List[str] = Field(default_factory=list)
    condition: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _normalize_legacy_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)

        next_id = data.pop("nextStepId", None) or data.pop("next_step_id", None)
        has_next_ids = data.get("nextStepIds") or data.get("next_step_ids")
        if next_id and not has_next_ids:
            data["next_step_ids"] = [next_id]

        agent_id = data.pop("agentId", None) or data.pop("agent_id", None)
        skill_id = data.pop("skillId", None) or data.pop("skill_id", None)
        workflow_id = data.pop("workflowId", None) or data.pop("workflow_id", None)
        if data.get("executor") is None:
            if workflow_id:
                data["executor"] = {"kind": ExecutorKind.WORKFLOW, "id": workflow_id}
            elif agent_id:
                data["executor"] = ExecutorRef.parse(agent_id)
            elif skill_id:
                data["executor"] = {"kind": ExecutorKind.SKILL, "id": skill_id}
        elif isinstance(data["executor"], str):
            data["executor"] = ExecutorRef.parse(data["executor"])

        for key in ("inputMap", "input_map"):
            if key in data and data[key] is None:
                data[key] = {}
        return data


class WorkflowDefinition(BaseModel):
    """A named graph of steps."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str = ""
    description: str = ""
    steps: List[WorkflowStep] = Field(default_factory=list)
    initial_step_id: Optional[str] = None

    def get_step(self, step_id: str) -> Optional[WorkflowStep]:
        return next((s for s in self.steps if s.id == step_id), None)


class AgentResult(BaseModel):
    """Completion returned by an agent run."""

    content: Any = None
    data: Optional[Any] = None


class AgentRunner(Protocol):
    """Capability that runs an agent over a textual input."""

    async def run_agent(
        self,
        agent_id: str,
        input_text: str,
        date: Optional[str] = None,
        options: Optional[Dict[str, Any]] = None,
    ) -> AgentResult:
        """Run ``agent_id`` and return its completion."""


class SkillRunner(Protocol):
    """Capability that invokes a skill directly."""

    async def run_skill(
        self, skill_id: str, input_text: str, date: Optional[str] = None
    ) -> Any:
        """Invoke ``skill_id`` and return its output."""


class WorkflowRunner(Protocol):
    """Capability that runs a stored workflow to completion."""

    async def run_workflow(
        self, workflow_id: str, initial_input: Any, date: Optional[str] = None
    ) -> Any:
        """Run ``workflow_id`` with ``initial_input`` bound to ``"start"``."""


class IngestionRunner(Protocol):
    """Collaborator that pulls raw items from content adapters."""

    async def run_full_ingestion(
        self, config: Dict[str, Any], on_progress: Any = None
    ) -> int:
        """Run every adapter; return the number of items stored."""

    async def run_adapter(
        self, adapter_id: str, config: Dict[str, Any], on_progress: Any = None
    ) -> int:
        """Run a single adapter; return the number of items it holds."""
