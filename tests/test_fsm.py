"""Tests for the generic state machine and the task lifecycle table."""

import pytest

from ergo.errors import InvalidTransitionError
from ergo.fsm import StateMachine, Transition
from ergo.workflow.states import TASK_TRANSITIONS, TaskEvent, TaskState, new_task_machine


class TestStateMachine:
    """Tests for StateMachine."""

    def test_initial_state(self):
        """Test machine starts in the initial state."""
        fsm = StateMachine("a", {("a", "go"): "b"})
        assert fsm.current_state == "a"

    def test_transition_returns_applied_edge(self):
        """Test transition mutates state and returns the edge."""
        fsm = StateMachine("a", {("a", "go"): "b"})

        applied = fsm.transition("go")

        assert applied == Transition(source="a", event="go", destination="b")
        assert fsm.current_state == "b"

    def test_can_transition(self):
        """Test can_transition reflects edges from the current state only."""
        fsm = StateMachine("a", {("a", "go"): "b", ("b", "back"): "a"})
        assert fsm.can_transition("go")
        assert not fsm.can_transition("back")

    def test_invalid_transition_leaves_state(self):
        """Test an undefined edge raises and does not move the machine."""
        fsm = StateMachine("a", {("a", "go"): "b"})

        with pytest.raises(InvalidTransitionError) as exc_info:
            fsm.transition("nope")

        assert fsm.current_state == "a"
        assert exc_info.value.state == "a"
        assert exc_info.value.event == "nope"

    def test_table_is_copied_and_read_only(self):
        """Test caller changes to the table do not reach the machine."""
        table = {("a", "go"): "b"}
        fsm = StateMachine("a", table)
        table[("a", "skip")] = "c"

        assert not fsm.can_transition("skip")
        with pytest.raises(TypeError):
            fsm.transitions[("a", "skip")] = "c"

    def test_available_events(self):
        """Test available_events lists events from the current state."""
        fsm = StateMachine("a", {("a", "go"): "b", ("a", "stay"): "a", ("b", "back"): "a"})
        assert sorted(fsm.available_events()) == ["go", "stay"]


class TestTaskLifecycle:
    """Tests for the canonical task transition table."""

    def test_new_machine_is_ready(self):
        """Test a fresh task machine starts READY."""
        assert new_task_machine().current_state == TaskState.READY

    def test_machines_are_independent(self):
        """Test two machines do not share state."""
        first = new_task_machine()
        second = new_task_machine()

        first.transition(TaskEvent.START)

        assert first.current_state == TaskState.RUNNING
        assert second.current_state == TaskState.READY

    def test_table_has_exactly_six_edges(self):
        """Test no edges beyond the documented lifecycle."""
        assert dict(TASK_TRANSITIONS) == {
            (TaskState.READY, TaskEvent.START): TaskState.RUNNING,
            (TaskState.RUNNING, TaskEvent.SUCCEED): TaskState.SUCCEEDED,
            (TaskState.RUNNING, TaskEvent.FAIL): TaskState.FAILED,
            (TaskState.FAILED, TaskEvent.RECOVER): TaskState.RECOVERING,
            (TaskState.RECOVERING, TaskEvent.SUCCEED): TaskState.SUCCEEDED,
            (TaskState.RECOVERING, TaskEvent.FAIL): TaskState.FAILED,
        }

    def test_recovery_path(self):
        """Test ready -> running -> failed -> recovering -> succeeded."""
        fsm = new_task_machine()
        for event in (TaskEvent.START, TaskEvent.FAIL, TaskEvent.RECOVER, TaskEvent.SUCCEED):
            fsm.transition(event)
        assert fsm.current_state == TaskState.SUCCEEDED

    def test_succeed_from_ready_is_invalid(self):
        """Test succeed while READY is rejected."""
        fsm = new_task_machine()
        with pytest.raises(InvalidTransitionError):
            fsm.transition(TaskEvent.SUCCEED)
        assert fsm.current_state == TaskState.READY

    def test_double_start_is_invalid(self):
        """Test start twice is rejected and state stays RUNNING."""
        fsm = new_task_machine()
        fsm.transition(TaskEvent.START)
        with pytest.raises(InvalidTransitionError):
            fsm.transition(TaskEvent.START)
        assert fsm.current_state == TaskState.RUNNING

    def test_terminal_states_have_no_way_out_except_recover(self):
        """Test SUCCEEDED has no edges and FAILED only allows recover."""
        fsm = new_task_machine()
        fsm.transition(TaskEvent.START)
        fsm.transition(TaskEvent.SUCCEED)
        assert fsm.available_events() == []

        fsm = new_task_machine()
        fsm.transition(TaskEvent.START)
        fsm.transition(TaskEvent.FAIL)
        assert fsm.available_events() == [TaskEvent.RECOVER]

    def test_is_terminal(self):
        """Test terminal flag on states."""
        assert TaskState.SUCCEEDED.is_terminal
        assert TaskState.FAILED.is_terminal
        assert not TaskState.RECOVERING.is_terminal
        assert not TaskState.READY.is_terminal
