"""contentflow: orchestration core for AI-assisted content pipelines."""

from .config import ContentflowConfig, load_config
from .contracts import AgentResult, ExecutorKind, ExecutorRef, WorkflowDefinition, WorkflowStep
from .engine import WorkflowEngine
from .graph import DependencyGraph, build_dependency_graph, ensure_acyclic
from .persistence import ScheduleTask, ScheduleType, TaskLog, TaskStatus, get_repository
from .resolver import resolve_step_input
from .scheduler import CronScheduler, ItemProcessor, ScheduleService, TaskRunner

__version__ = "0.1.0"
__all__ = [
    "AgentResult",
    "ContentflowConfig",
    "CronScheduler",
    "DependencyGraph",
    "ExecutorKind",
    "ExecutorRef",
    "ItemProcessor",
    "ScheduleService",
    "ScheduleTask",
    "ScheduleType",
    "TaskLog",
    "TaskRunner",
    "TaskStatus",
    "WorkflowDefinition",
    "WorkflowEngine",
    "WorkflowStep",
    "build_dependency_graph",
    "ensure_acyclic",
    "get_repository",
    "load_config",
    "resolve_step_input",
]
