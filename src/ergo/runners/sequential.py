"""Sequential runner - Executes workflow tasks one at a time, fail-fast."""

import logging

from ..config import AppConfig
from ..dispatcher import CommandDispatcher
from ..errors import TaskUnrecoveredFailure
from ..workflow import Workflow
from .base import RunnerCallbacks, TaskRun, TaskRunnerProtocol, WorkflowReport
from .executor import TaskExecutor
from .fanout import FanOutRunner

logger = logging.getLogger(__name__)


class SequentialRunner:
    """
    Sequential workflow runner.

    Executes tasks one at a time in document order. The first task that
    fails without recovery halts the run; later tasks never start.
    Uses callbacks for progress reporting without coupling to UI.
    """

    def __init__(self, config: AppConfig | None = None, dispatcher: CommandDispatcher | None = None):
        """
        Initialize the runner.

        Args:
            config: Application config (defaults when None)
            dispatcher: Command dispatcher; built from config when None
        """
        self.config = config or AppConfig()
        self.dispatcher = dispatcher or CommandDispatcher.from_config(self.config.execution)

    def run(self, workflow: Workflow, callbacks: RunnerCallbacks | None = None) -> WorkflowReport:
        """
        Execute a workflow.

        Args:
            workflow: The Workflow to execute
            callbacks: Optional callbacks for progress reporting

        Returns:
            WorkflowReport with one entry per task that ran
        """
        cb = callbacks or RunnerCallbacks()
        executor = TaskExecutor(self.dispatcher, cb)
        fanout = FanOutRunner.from_config(self.dispatcher, self.config.fanout, cb)

        report = WorkflowReport(workflow_name=workflow.name)

        if cb.on_workflow_start:
            cb.on_workflow_start(workflow.name, len(workflow.tasks))

        runs = [TaskRun(task) for task in workflow.tasks]
        for position, task_run in enumerate(runs):
            task = task_run.task

            if cb.on_task_start:
                cb.on_task_start(task.name, task.operator)

            runner: TaskRunnerProtocol = fanout if task.is_map else executor
            try:
                outcome = runner.run(task_run)
                logger.info(f"Task {task.name}: {outcome.value}")
            except TaskUnrecoveredFailure as e:
                report.halted_by = task.name
                report.errors.append(f"Task {task.name}: {task_run.error or e.message}")
                report.pending = [r.task.name for r in runs[position + 1 :]]
                logger.error(f"Workflow {workflow.name} halted: {e.message}")
            finally:
                task_report = task_run.report()
                report.tasks.append(task_report)
                if cb.on_task_complete:
                    cb.on_task_complete(task_report)

            if report.halted_by is not None:
                break

            if task_run.error:
                # Recovered task or failed reduce: worth surfacing, not halting
                report.errors.append(f"Task {task.name}: {task_run.error}")

        if cb.on_workflow_complete:
            cb.on_workflow_complete(report)

        return report
