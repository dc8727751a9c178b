"""
Workflow layer - Task and workflow definitions.

Workflows are DATA STRUCTURES that define what to do.
They do NOT execute anything - that's the runner's job.
"""

from .loader import load_workflow, parse_workflow, workflow_from_dict
from .states import TASK_TRANSITIONS, TaskEvent, TaskState, new_task_machine
from .tasks import Catch, Operator, Reduce, Resources, Task, Workflow

__all__ = [
    "Catch",
    "Operator",
    "Reduce",
    "Resources",
    "Task",
    "Workflow",
    "TASK_TRANSITIONS",
    "TaskEvent",
    "TaskState",
    "new_task_machine",
    "load_workflow",
    "parse_workflow",
    "workflow_from_dict",
]
