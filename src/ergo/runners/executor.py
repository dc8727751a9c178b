"""Task executor - Drives one task through its lifecycle, with catch fallback."""

import logging
from typing import NoReturn

from ..dispatcher import CommandDispatcher, CommandResult
from ..errors import CommandExecutionError, TaskUnrecoveredFailure
from ..workflow.states import TaskEvent
from ..workflow.tasks import Operator
from .base import RunnerCallbacks, RunOutcome, StateChange, TaskRun

logger = logging.getLogger(__name__)


class BaseTaskRunner:
    """
    Shared plumbing for task runners.

    Applies events to a TaskRun and reports each resulting state change,
    and wraps dispatcher calls with command callbacks.
    """

    def __init__(self, dispatcher: CommandDispatcher, callbacks: RunnerCallbacks | None = None):
        self.dispatcher = dispatcher
        self.callbacks = callbacks or RunnerCallbacks()

    def _fire(self, task_run: TaskRun, event: TaskEvent) -> StateChange:
        change = task_run.apply(event)
        logger.info(f"Task {change.task_name}: {change.from_state.value} -> {change.to_state.value}")
        if self.callbacks.on_state_change:
            self.callbacks.on_state_change(change)
        return change

    def _dispatch(self, task_run: TaskRun, command: str, operator: Operator) -> CommandResult:
        cb = self.callbacks
        name = task_run.task.name

        if cb.on_command_start:
            cb.on_command_start(name, command)

        on_output = None
        if cb.on_output:

            def on_output(line: str) -> None:
                cb.on_output(name, line)

        try:
            return self.dispatcher.run(command, operator, on_output=on_output)
        except CommandExecutionError as e:
            logger.warning(f"Task {name}: {e.message}")
            if cb.on_command_failed:
                cb.on_command_failed(name, command, e)
            raise

    def _fail(self, task_run: TaskRun, cause: Exception | None) -> NoReturn:
        """Mark the run as an unrecovered failure and escalate."""
        task_run.outcome = RunOutcome.FAILURE
        raise TaskUnrecoveredFailure(
            task_run.task.name,
            cause=cause,
            recovery_attempted=task_run.recovery_attempted,
        ) from cause


class TaskExecutor(BaseTaskRunner):
    """
    Runs a single non-map task.

    ready -> running -> succeeded on success. On failure the task moves to
    failed; with a catch command it then goes through recovering and ends
    in succeeded or failed depending on the fallback.
    """

    def run(self, task_run: TaskRun) -> RunOutcome:
        """
        Execute the task.

        Returns:
            SUCCESS, or RECOVERED when the fallback rescued the task

        Raises:
            InvalidTransitionError: Run is not READY; nothing is dispatched
            TaskUnrecoveredFailure: Command failed and no fallback succeeded
        """
        task = task_run.task
        if task.is_map:
            raise ValueError(f"Task {task.name} is a map task; use FanOutRunner")

        self._fire(task_run, TaskEvent.START)
        task_run.start_clock()
        try:
            outcome = self._execute(task_run)
        finally:
            task_run.stop_clock()

        task_run.outcome = outcome
        return outcome

    def _execute(self, task_run: TaskRun) -> RunOutcome:
        task = task_run.task

        try:
            self._dispatch(task_run, task.command, task.operator)
        except CommandExecutionError as primary_error:
            self._fire(task_run, TaskEvent.FAIL)
            task_run.error = primary_error.detail

            if task.catch is None:
                logger.warning(f"Task {task.name}: no fallback defined")
                self._fail(task_run, primary_error)

            return self._recover(task_run)

        self._fire(task_run, TaskEvent.SUCCEED)
        return RunOutcome.SUCCESS

    def _recover(self, task_run: TaskRun) -> RunOutcome:
        task = task_run.task
        self._fire(task_run, TaskEvent.RECOVER)
        task_run.recovery_attempted = True
        logger.info(f"Task {task.name}: running fallback command")

        try:
            self._dispatch(task_run, task.catch.command, task.operator)
        except CommandExecutionError as fallback_error:
            self._fire(task_run, TaskEvent.FAIL)
            task_run.error = fallback_error.detail
            self._fail(task_run, fallback_error)

        self._fire(task_run, TaskEvent.SUCCEED)
        return RunOutcome.RECOVERED
