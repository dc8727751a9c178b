"""
Runners layer - Execution engines for workflows.

Runners execute workflows, driving each task's state machine and
reporting progress through callbacks. They interpret tasks and hand
commands to the dispatcher.
"""

from .base import (
    ItemResult,
    ItemStatus,
    RunnerCallbacks,
    RunnerProtocol,
    RunOutcome,
    StateChange,
    TaskReport,
    TaskRun,
    WorkflowReport,
    WorkflowStatus,
)
from .executor import TaskExecutor
from .fanout import FanOutRunner
from .sequential import SequentialRunner

__all__ = [
    "ItemResult",
    "ItemStatus",
    "RunnerCallbacks",
    "RunnerProtocol",
    "RunOutcome",
    "StateChange",
    "TaskReport",
    "TaskRun",
    "WorkflowReport",
    "WorkflowStatus",
    "TaskExecutor",
    "FanOutRunner",
    "SequentialRunner",
]
