"""ergo error hierarchy.

ErgoError is the base for everything the engine raises on purpose:

- SpecificationLoadError: workflow file unreadable or malformed
- ConfigurationError: invalid configuration values
- InvalidTransitionError: state machine event with no edge from current state
- CommandExecutionError: command could not be launched or exited non-zero
- TaskUnrecoveredFailure: task failed and catch was absent or failed too

Only TaskUnrecoveredFailure halts the workflow runner. CommandExecutionError
is handled by the executor's catch logic before it can escalate.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any


class ErgoError(Exception):
    """Base for all ergo errors."""

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause


class SpecificationLoadError(ErgoError):
    """Workflow file could not be read or parsed."""

    def __init__(self, path: Path | str, message: str, *, cause: Exception | None = None) -> None:
        self.path = Path(path)
        super().__init__(f"{self.path}: {message}", cause=cause)


class ConfigurationError(ErgoError):
    """Configuration contains invalid values."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        super().__init__("; ".join(errors))


class InvalidTransitionError(ErgoError):
    """Requested event has no edge from the current state.

    Under correct driving by the runners this never happens, so it points
    at a defect in the caller rather than in the workflow.
    """

    def __init__(self, state: Any, event: Any) -> None:
        self.state = state
        self.event = event
        super().__init__(f"invalid transition: no '{_label(event)}' edge from state '{_label(state)}'")


class CommandExecutionError(ErgoError):
    """A dispatched command failed to launch, exited non-zero or timed out."""

    def __init__(
        self,
        command: str,
        *,
        returncode: int | None = None,
        stderr: str = "",
        stdout: str = "",
        timed_out: bool = False,
        cause: Exception | None = None,
    ) -> None:
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        self.stdout = stdout
        self.timed_out = timed_out

        if timed_out:
            reason = "timed out"
        elif returncode is None:
            reason = f"could not be launched ({cause})" if cause else "could not be launched"
        else:
            reason = f"exited with status {returncode}"
        super().__init__(f"command {reason}: {command}", cause=cause)

    @property
    def detail(self) -> str:
        """Most useful diagnostic text: stderr if any, else the message."""
        return self.stderr.strip() or self.message


class TaskUnrecoveredFailure(ErgoError):
    """A task failed and no fallback rescued it; halts the workflow."""

    def __init__(
        self,
        task_name: str,
        *,
        cause: Exception | None = None,
        recovery_attempted: bool = False,
    ) -> None:
        self.task_name = task_name
        self.recovery_attempted = recovery_attempted
        suffix = " (fallback also failed)" if recovery_attempted else ""
        super().__init__(f"task '{task_name}' failed{suffix}", cause=cause)


def _label(value: Any) -> str:
    return str(getattr(value, "value", value))
