"""Exception types raised by contentflow."""

from __future__ import annotations

from typing import Iterable


class ContentflowError(Exception):
    """Base class for all contentflow errors."""


class WorkflowNotFoundError(ContentflowError):
    def __init__(self, workflow_id: str) -> None:
        super().__init__(f"Workflow {workflow_id} not found")
        self.workflow_id = workflow_id


class WorkflowCycleError(ContentflowError):
    """Raised when a workflow's step graph contains a cycle."""

    def __init__(self, workflow_id: str, step_ids: Iterable[str]) -> None:
        self.workflow_id = workflow_id
        self.step_ids = list(step_ids)
        super().__init__(
            f"Workflow {workflow_id} has cyclic dependencies between steps: "
            f"{', '.join(self.step_ids)}"
        )


class ScheduleNotFoundError(ContentflowError):
    def __init__(self, schedule_id: str) -> None:
        super().__init__(f"Schedule {schedule_id} not found")
        self.schedule_id = schedule_id


class InvalidCronExpressionError(ContentflowError):
    def __init__(self, expression: str) -> None:
        super().__init__(f"Invalid cron expression: {expression}")
        self.expression = expression


class CollaboratorUnavailableError(ContentflowError):
    """A schedule needs a collaborator that was not injected."""


class UnknownScheduleTypeError(ContentflowError):
    def __init__(self, schedule_type: str) -> None:
        super().__init__(f"Unknown task type: {schedule_type}")
        self.schedule_type = schedule_type
