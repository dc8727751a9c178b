"""Tests for sequential runner - critical workflow execution logic."""

from unittest.mock import MagicMock

import pytest

from ergo.config import AppConfig
from ergo.dispatcher import CommandDispatcher
from ergo.errors import InvalidTransitionError
from ergo.runners import RunnerCallbacks, RunOutcome, SequentialRunner, WorkflowStatus
from ergo.workflow import Catch, Operator, Task, TaskState, Workflow, load_workflow

READY, RUNNING, SUCCEEDED, FAILED, RECOVERING = (
    TaskState.READY,
    TaskState.RUNNING,
    TaskState.SUCCEEDED,
    TaskState.FAILED,
    TaskState.RECOVERING,
)


@pytest.fixture
def runner(dispatcher):
    return SequentialRunner(dispatcher=dispatcher)


def make_workflow(*tasks):
    return Workflow(name="test", tasks=tuple(tasks))


class TestSequentialRunnerInit:
    """Tests for SequentialRunner initialization."""

    def test_init_default(self):
        """Test default initialization builds a dispatcher from config."""
        runner = SequentialRunner()
        assert isinstance(runner.config, AppConfig)
        assert isinstance(runner.dispatcher, CommandDispatcher)

    def test_init_uses_config(self):
        """Test execution settings flow into the dispatcher."""
        config = AppConfig()
        config.execution.timeout = 12.0

        runner = SequentialRunner(config)

        assert runner.dispatcher.timeout == 12.0


class TestSequentialRunnerRun:
    """Tests for SequentialRunner.run method."""

    def test_all_tasks_succeed(self, runner):
        """Test a clean run reports every task succeeded in order."""
        report = runner.run(make_workflow(Task(name="a", command="true"), Task(name="b", command="echo b")))

        assert report.success
        assert report.status is WorkflowStatus.COMPLETED
        assert [t.name for t in report.tasks] == ["a", "b"]
        assert all(t.final_state is SUCCEEDED for t in report.tasks)
        assert report.tasks_completed == 2
        assert report.pending == []

    def test_empty_workflow(self, runner):
        """Test a workflow with no tasks completes."""
        report = runner.run(make_workflow())
        assert report.success
        assert report.tasks == []

    def test_halts_on_unrecovered_failure(self, runner, tmp_path):
        """Test fail-fast: tasks after the failure never run."""
        marker = tmp_path / "should-not-exist"
        workflow = make_workflow(
            Task(name="first", command="true"),
            Task(name="broken", command="false"),
            Task(name="later", command=f"touch {marker}"),
            Task(name="last", command=f"touch {marker}"),
        )

        report = runner.run(workflow)

        assert not report.success
        assert report.status is WorkflowStatus.HALTED
        assert report.halted_by == "broken"
        assert report.pending == ["later", "last"]
        assert [t.name for t in report.tasks] == ["first", "broken"]
        assert report.get_task("broken").states == (READY, RUNNING, FAILED)
        assert report.get_task("broken").outcome is RunOutcome.FAILURE
        assert not marker.exists()
        assert "broken" in report.errors[0]

    def test_recovered_task_continues(self, runner):
        """Test a recovered task lets the workflow continue."""
        workflow = make_workflow(
            Task(name="flaky", command="false", catch=Catch("true")),
            Task(name="next", command="true"),
        )

        report = runner.run(workflow)

        assert report.success
        assert report.status is WorkflowStatus.RECOVERED
        assert report.tasks_recovered == 1
        assert report.get_task("flaky").states == (READY, RUNNING, FAILED, RECOVERING, SUCCEEDED)
        assert report.get_task("next").final_state is SUCCEEDED

    def test_failed_fallback_halts(self, runner):
        """Test a task whose fallback fails halts the workflow."""
        workflow = make_workflow(
            Task(name="doomed", command="false", catch=Catch("false")),
            Task(name="next", command="true"),
        )

        report = runner.run(workflow)

        assert report.halted_by == "doomed"
        doomed = report.get_task("doomed")
        assert doomed.states == (READY, RUNNING, FAILED, RECOVERING, FAILED)
        assert doomed.recovery_attempted
        assert report.pending == ["next"]

    def test_map_task_routed_to_fanout(self, runner):
        """Test map tasks succeed even when items are excluded."""
        workflow = make_workflow(
            Task(
                name="fan",
                operator=Operator.MAP,
                input=("a", "b", "c"),
                command="test {item} != b",
            ),
            Task(name="after", command="true"),
        )

        report = runner.run(workflow)

        fan = report.get_task("fan")
        assert fan.final_state is SUCCEEDED
        assert fan.results == ["a", "c"]
        assert fan.excluded == ["b"]
        assert report.success

    def test_strict_map_halts(self, dispatcher):
        """Test fail_on_partial turns an excluded item into a halt."""
        config = AppConfig()
        config.fanout.fail_on_partial = True
        runner = SequentialRunner(config, dispatcher)
        workflow = make_workflow(
            Task(name="fan", operator=Operator.MAP, input=("a", "b"), command="test {item} = a"),
            Task(name="after", command="true"),
        )

        report = runner.run(workflow)

        assert report.halted_by == "fan"
        assert report.get_task("fan").final_state is FAILED
        assert report.pending == ["after"]

    def test_fresh_run_per_execution(self, runner):
        """Test running the same workflow twice starts each task from READY again."""
        workflow = make_workflow(Task(name="a", command="true"))

        first = runner.run(workflow)
        second = runner.run(workflow)

        assert first.tasks[0].states == second.tasks[0].states == (READY, RUNNING, SUCCEEDED)

    def test_duplicate_names_allowed(self, runner):
        """Test task names are not required to be unique."""
        report = runner.run(make_workflow(Task(name="same", command="true"), Task(name="same", command="true")))
        assert len(report.tasks) == 2

    def test_invalid_transition_propagates(self):
        """Test a state machine defect surfaces instead of being swallowed."""
        dispatcher = MagicMock()
        runner = SequentialRunner(dispatcher=dispatcher)

        def broken_run(command, operator, on_output=None):
            raise InvalidTransitionError("running", "start")

        dispatcher.run.side_effect = broken_run

        with pytest.raises(InvalidTransitionError):
            runner.run(make_workflow(Task(name="a", command="true")))


class TestSequentialRunnerCallbacks:
    """Tests for progress callbacks."""

    def test_callbacks_invoked(self, runner):
        """Test workflow and task callbacks fire in order."""
        events = []
        callbacks = RunnerCallbacks(
            on_workflow_start=lambda name, total: events.append(("workflow_start", name, total)),
            on_task_start=lambda name, op: events.append(("task_start", name, op)),
            on_task_complete=lambda report: events.append(("task_complete", report.name, report.final_state)),
            on_workflow_complete=lambda report: events.append(("workflow_complete", report.success)),
        )

        runner.run(make_workflow(Task(name="a", command="true"), Task(name="b", command="false")), callbacks)

        assert events == [
            ("workflow_start", "test", 2),
            ("task_start", "a", Operator.BASH),
            ("task_complete", "a", SUCCEEDED),
            ("task_start", "b", Operator.BASH),
            ("task_complete", "b", FAILED),
            ("workflow_complete", False),
        ]

    def test_state_change_stream(self, runner):
        """Test the state-change stream covers every task that ran."""
        changes = []

        runner.run(
            make_workflow(Task(name="a", command="true"), Task(name="b", command="true")),
            RunnerCallbacks(on_state_change=changes.append),
        )

        assert [(c.task_name, c.to_state) for c in changes] == [
            ("a", RUNNING),
            ("a", SUCCEEDED),
            ("b", RUNNING),
            ("b", SUCCEEDED),
        ]


class TestIdempotence:
    """Tests for repeatable runs from the same file."""

    def test_same_file_same_results(self, sample_workflow_file, dispatcher):
        """Test loading and running twice yields identical states and results."""
        reports = []
        for _ in range(2):
            workflow = load_workflow(sample_workflow_file)
            reports.append(SequentialRunner(dispatcher=dispatcher).run(workflow))

        first, second = reports
        assert [t.states for t in first.tasks] == [t.states for t in second.tasks]
        assert [t.results for t in first.tasks] == [t.results for t in second.tasks]
        assert first.get_task("fanout").reduce_command == "echo tally: a,c"
        assert first.status is WorkflowStatus.RECOVERED


class TestMapEndToEnd:
    """Tests for map tasks loaded from workflow files."""

    def test_version_inputs_dispatched_literally(self, write_workflow, dispatcher):
        """Test version-like inputs reach commands and reduce unchanged."""
        path = write_workflow(
            """
            workflow:
              tasks:
                - name: versions
                  operator: map
                  input: [1.10, 1.20]
                  command: "test {item} = 1.10 -o {item} = 1.20"
                  reduce:
                    command: "echo {results}"
            """
        )

        report = SequentialRunner(dispatcher=dispatcher).run(load_workflow(path))

        versions = report.get_task("versions")
        assert versions.results == ["1.10", "1.20"]
        assert [r.command for r in versions.items] == [
            "test 1.10 = 1.10 -o 1.10 = 1.20",
            "test 1.20 = 1.10 -o 1.20 = 1.20",
        ]
        assert versions.reduce_command == "echo 1.10,1.20"

    def test_item_fallback_counts_as_recovered(self, dispatcher):
        """Test a run whose only rescue was a map item reports RECOVERED."""
        workflow = make_workflow(
            Task(name="fan", operator=Operator.MAP, input=("a", "b"), command="test {item} = a", catch=Catch("true")),
        )

        report = SequentialRunner(dispatcher=dispatcher).run(workflow)

        assert report.success
        assert report.status is WorkflowStatus.RECOVERED
        assert report.tasks_recovered == 1
        assert report.get_task("fan").outcome is RunOutcome.SUCCESS
