"""Base runner classes: run records, reports, callbacks."""

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Protocol

from ..errors import CommandExecutionError
from ..fsm import StateMachine
from ..workflow.states import TaskEvent, TaskState, new_task_machine
from ..workflow.tasks import Operator, Task

if TYPE_CHECKING:
    from ..workflow import Workflow


class RunOutcome(Enum):
    """How a task run ended."""

    SUCCESS = "success"
    RECOVERED = "recovered"  # primary failed, fallback succeeded
    FAILURE = "failure"  # unrecovered; halts the workflow


class ItemStatus(Enum):
    """How one fan-out item ended."""

    SUCCEEDED = "succeeded"
    RECOVERED = "recovered"
    FAILED = "failed"

    @property
    def ok(self) -> bool:
        return self is not ItemStatus.FAILED


class WorkflowStatus(Enum):
    COMPLETED = "completed"  # every task succeeded first time
    RECOVERED = "recovered"  # completed, at least one task via fallback
    HALTED = "halted"  # stopped on an unrecovered failure


@dataclass(frozen=True)
class StateChange:
    """State-change event for presentation."""

    task_name: str
    from_state: TaskState
    to_state: TaskState
    timestamp: datetime


@dataclass(frozen=True)
class ItemResult:
    """Result of one fan-out item."""

    index: int
    item: str
    status: ItemStatus
    command: str
    error: str | None = None


@dataclass
class TaskRun:
    """
    Mutable record of one task execution.

    Pairs the task with its own state machine. `state` always reads the
    machine, so the two cannot drift apart.
    """

    task: Task
    machine: StateMachine[TaskState, TaskEvent] = field(default_factory=new_task_machine)
    history: list[StateChange] = field(default_factory=list)
    duration: float = 0.0
    outcome: RunOutcome | None = None
    recovery_attempted: bool = False
    error: str | None = None
    # Fan-out only
    items: list[ItemResult] = field(default_factory=list)
    reduce_command: str | None = None
    reduce_succeeded: bool | None = None

    _started_at: float | None = field(default=None, init=False, repr=False)

    @property
    def state(self) -> TaskState:
        return self.machine.current_state

    @property
    def states(self) -> list[TaskState]:
        """Full state sequence, starting with the initial state."""
        if not self.history:
            return [self.state]
        return [self.history[0].from_state] + [change.to_state for change in self.history]

    @property
    def results(self) -> list[str]:
        """Successful fan-out items, in input order."""
        return [r.item for r in self.items if r.status.ok]

    def apply(self, event: TaskEvent) -> StateChange:
        """
        Apply event to the run's machine and record it.

        Raises:
            InvalidTransitionError: Event not valid in the current state
        """
        applied = self.machine.transition(event)
        change = StateChange(
            task_name=self.task.name,
            from_state=applied.source,
            to_state=applied.destination,
            timestamp=datetime.now(timezone.utc),
        )
        self.history.append(change)
        return change

    def start_clock(self) -> None:
        self._started_at = time.monotonic()

    def stop_clock(self) -> None:
        if self._started_at is not None:
            self.duration = time.monotonic() - self._started_at

    def report(self) -> "TaskReport":
        return TaskReport(
            name=self.task.name,
            operator=self.task.operator,
            final_state=self.state,
            duration=self.duration,
            outcome=self.outcome,
            states=tuple(self.states),
            recovery_attempted=self.recovery_attempted,
            error=self.error,
            items=tuple(self.items),
            reduce_command=self.reduce_command,
            reduce_succeeded=self.reduce_succeeded,
        )


@dataclass(frozen=True)
class TaskReport:
    """Immutable per-task summary."""

    name: str
    operator: Operator
    final_state: TaskState
    duration: float
    outcome: RunOutcome | None
    states: tuple[TaskState, ...] = ()
    recovery_attempted: bool = False
    error: str | None = None
    items: tuple[ItemResult, ...] = ()
    reduce_command: str | None = None
    reduce_succeeded: bool | None = None

    @property
    def results(self) -> list[str]:
        return [r.item for r in self.items if r.status.ok]

    @property
    def excluded(self) -> list[str]:
        return [r.item for r in self.items if not r.status.ok]

    @property
    def recovered(self) -> bool:
        """True when the task itself or any of its map items was rescued by a fallback."""
        return self.outcome is RunOutcome.RECOVERED or any(r.status is ItemStatus.RECOVERED for r in self.items)


@dataclass
class WorkflowReport:
    """Result of running a workflow."""

    workflow_name: str
    tasks: list[TaskReport] = field(default_factory=list)
    halted_by: str | None = None
    # Tasks never started because of the halt
    pending: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.halted_by is None

    @property
    def status(self) -> WorkflowStatus:
        if self.halted_by is not None:
            return WorkflowStatus.HALTED
        if any(t.recovered for t in self.tasks):
            return WorkflowStatus.RECOVERED
        return WorkflowStatus.COMPLETED

    @property
    def tasks_completed(self) -> int:
        return sum(1 for t in self.tasks if t.outcome in (RunOutcome.SUCCESS, RunOutcome.RECOVERED))

    @property
    def tasks_recovered(self) -> int:
        return sum(1 for t in self.tasks if t.recovered)

    @property
    def total_duration(self) -> float:
        return sum(t.duration for t in self.tasks)

    def get_task(self, name: str) -> TaskReport | None:
        for task in self.tasks:
            if task.name == name:
                return task
        return None


@dataclass
class RunnerCallbacks:
    """
    Callbacks for runner progress reporting.

    Allows CLI to display progress without coupling runners to Rich/UI.
    All callbacks are optional - if None, no callback is made.
    Fan-out item callbacks may arrive from worker threads.
    """

    # Workflow lifecycle
    on_workflow_start: Callable[[str, int], None] | None = None  # name, total_tasks
    on_workflow_complete: Callable[[WorkflowReport], None] | None = None

    # Task lifecycle
    on_task_start: Callable[[str, Operator], None] | None = None  # task name, operator
    on_task_complete: Callable[[TaskReport], None] | None = None
    on_state_change: Callable[[StateChange], None] | None = None

    # Commands
    on_command_start: Callable[[str, str], None] | None = None  # task name, command
    on_output: Callable[[str, str], None] | None = None  # task name, stdout line
    on_command_failed: Callable[[str, str, CommandExecutionError], None] | None = None  # task, command, error

    # Fan-out
    on_item_complete: Callable[[str, ItemResult], None] | None = None  # task name, result


class TaskRunnerProtocol(Protocol):
    """Protocol for anything that drives a single TaskRun."""

    def run(self, task_run: TaskRun) -> RunOutcome:
        """
        Drive task_run from READY to a terminal state.

        Returns:
            SUCCESS or RECOVERED

        Raises:
            TaskUnrecoveredFailure: The task failed for good
        """
        ...


class RunnerProtocol(Protocol):
    """Protocol for workflow runners."""

    def run(self, workflow: "Workflow", callbacks: RunnerCallbacks | None = None) -> WorkflowReport:
        """
        Execute a workflow.

        Args:
            workflow: The workflow to execute
            callbacks: Optional callbacks for progress reporting

        Returns:
            WorkflowReport with execution summary
        """
        ...
