"""Task lifecycle states, events and the canonical transition table."""

from enum import Enum
from types import MappingProxyType

from ..fsm import StateMachine


class TaskState(Enum):
    """Lifecycle state of a task run."""

    READY = "ready"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    RECOVERING = "recovering"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskState.SUCCEEDED, TaskState.FAILED)


class TaskEvent(Enum):
    """Events that drive a task run between states."""

    START = "start"
    SUCCEED = "succeed"
    FAIL = "fail"
    RECOVER = "recover"


# Shared read-only; every machine copies it on construction
TASK_TRANSITIONS = MappingProxyType(
    {
        (TaskState.READY, TaskEvent.START): TaskState.RUNNING,
        (TaskState.RUNNING, TaskEvent.SUCCEED): TaskState.SUCCEEDED,
        (TaskState.RUNNING, TaskEvent.FAIL): TaskState.FAILED,
        (TaskState.FAILED, TaskEvent.RECOVER): TaskState.RECOVERING,
        (TaskState.RECOVERING, TaskEvent.SUCCEED): TaskState.SUCCEEDED,
        (TaskState.RECOVERING, TaskEvent.FAIL): TaskState.FAILED,
    }
)


def new_task_machine() -> StateMachine[TaskState, TaskEvent]:
    """Create a fresh task lifecycle machine in the READY state."""
    return StateMachine(TaskState.READY, TASK_TRANSITIONS)
