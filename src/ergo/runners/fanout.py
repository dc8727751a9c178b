"""
Fan-out runner - Runs a map task's command template once per input item,
then optionally folds the successful items through a reduce command.

Item failures never stop the loop. A failed item is retried through the
task's catch command in the same worker slot; if that fails too, the item
is left out of the results handed to reduce.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed

from ..config import FanoutConfig
from ..constants import DEFAULT_MAX_WORKERS, ITEM_PLACEHOLDER, RESULTS_PLACEHOLDER, RESULTS_SEPARATOR
from ..dispatcher import CommandDispatcher
from ..errors import CommandExecutionError, ConfigurationError
from ..workflow.states import TaskEvent
from ..workflow.tasks import Operator
from .base import ItemResult, ItemStatus, RunnerCallbacks, RunOutcome, TaskRun
from .executor import BaseTaskRunner

logger = logging.getLogger(__name__)


class FanOutRunner(BaseTaskRunner):
    """
    Map/reduce task runner.

    The task's own state goes ready -> running -> succeeded once the
    fan-out (and reduce) finish, whatever happened to individual items.
    With fail_on_partial, any excluded item fails the task instead.
    """

    def __init__(
        self,
        dispatcher: CommandDispatcher,
        callbacks: RunnerCallbacks | None = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
        fail_on_partial: bool = False,
        item_placeholder: str = ITEM_PLACEHOLDER,
        results_placeholder: str = RESULTS_PLACEHOLDER,
        separator: str = RESULTS_SEPARATOR,
    ):
        super().__init__(dispatcher, callbacks)
        if isinstance(max_workers, bool) or not isinstance(max_workers, int) or max_workers < 1:
            raise ConfigurationError([f"max_workers must be a positive integer, got {max_workers!r}"])
        self.max_workers = max_workers
        self.fail_on_partial = fail_on_partial
        self.item_placeholder = item_placeholder
        self.results_placeholder = results_placeholder
        self.separator = separator

    @classmethod
    def from_config(
        cls,
        dispatcher: CommandDispatcher,
        config: FanoutConfig,
        callbacks: RunnerCallbacks | None = None,
    ) -> "FanOutRunner":
        return cls(
            dispatcher,
            callbacks,
            max_workers=config.max_workers,
            fail_on_partial=config.fail_on_partial,
            item_placeholder=config.item_placeholder,
            results_placeholder=config.results_placeholder,
            separator=config.separator,
        )

    def run(self, task_run: TaskRun) -> RunOutcome:
        """
        Execute the map task.

        Returns:
            SUCCESS once fan-out and reduce have completed

        Raises:
            InvalidTransitionError: Run is not READY
            TaskUnrecoveredFailure: fail_on_partial is set and an item was excluded
        """
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

        if not task.input:
            logger.info(f"Task {task.name}: no inputs for map operation")
        task_run.items = self._map(task_run)

        if task.reduce is not None:
            self._reduce(task_run)

        excluded = [r.item for r in task_run.items if not r.status.ok]
        if excluded:
            logger.warning(f"Task {task.name}: {len(excluded)} of {len(task.input)} items excluded: {excluded}")
            if self.fail_on_partial:
                self._fire(task_run, TaskEvent.FAIL)
                task_run.error = f"{len(excluded)} of {len(task.input)} items failed: {', '.join(excluded)}"
                self._fail(task_run, None)

        self._fire(task_run, TaskEvent.SUCCEED)
        return RunOutcome.SUCCESS

    def _map(self, task_run: TaskRun) -> list[ItemResult]:
        """Run every item; results come back in input order."""
        items = task_run.task.input
        # One slot per input position, filled in whatever order items finish
        slots: list[ItemResult | None] = [None] * len(items)

        if self.max_workers == 1 or len(items) <= 1:
            for idx, item in enumerate(items):
                slots[idx] = self._run_item(task_run, idx, item)
        else:
            workers = min(self.max_workers, len(items))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ergo-map") as pool:
                futures = {pool.submit(self._run_item, task_run, idx, item): idx for idx, item in enumerate(items)}
                for future in as_completed(futures):
                    slots[futures[future]] = future.result()

        return list(slots)

    def _run_item(self, task_run: TaskRun, idx: int, item: str) -> ItemResult:
        """Primary attempt for one item, then its fallback in the same slot."""
        task = task_run.task
        command = task.command.replace(self.item_placeholder, item)
        logger.info(f"Task {task.name}: map item '{item}'")

        try:
            self._dispatch(task_run, command, Operator.BASH)
            result = ItemResult(index=idx, item=item, status=ItemStatus.SUCCEEDED, command=command)
        except CommandExecutionError as primary_error:
            if task.catch is None:
                logger.warning(f"Task {task.name}: no fallback defined for item '{item}'")
                result = ItemResult(
                    index=idx, item=item, status=ItemStatus.FAILED, command=command, error=primary_error.detail
                )
            else:
                result = self._recover_item(task_run, idx, item)

        if self.callbacks.on_item_complete:
            self.callbacks.on_item_complete(task.name, result)
        return result

    def _recover_item(self, task_run: TaskRun, idx: int, item: str) -> ItemResult:
        fallback = task_run.task.catch.command.replace(self.item_placeholder, item)
        logger.info(f"Task {task_run.task.name}: running fallback for item '{item}'")
        try:
            self._dispatch(task_run, fallback, Operator.BASH)
        except CommandExecutionError as e:
            return ItemResult(index=idx, item=item, status=ItemStatus.FAILED, command=fallback, error=e.detail)
        return ItemResult(index=idx, item=item, status=ItemStatus.RECOVERED, command=fallback)

    def _reduce(self, task_run: TaskRun) -> None:
        """Fold successful items through the reduce command. Failure is reported, not escalated."""
        joined = self.separator.join(task_run.results)
        command = task_run.task.reduce.command.replace(self.results_placeholder, joined)
        task_run.reduce_command = command

        try:
            self._dispatch(task_run, command, Operator.BASH)
            task_run.reduce_succeeded = True
        except CommandExecutionError as e:
            task_run.reduce_succeeded = False
            task_run.error = f"reduce failed: {e.detail}"
