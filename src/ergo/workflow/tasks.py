"""Task definitions for workflows."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class Operator(Enum):
    """Execution style of a task's command."""

    BASH = "bash"  # platform shell
    CLI = "cli"  # explicit shell, same dispatch as bash
    PYTHON = "python"  # interpreter with the command as inline program
    MAP = "map"  # fan-out over task input

    @classmethod
    def parse(cls, value: Any) -> "Operator":
        """
        Parse an operator name from a workflow file.

        Absent or empty values default to BASH. Unknown names also fall
        back to BASH, with a warning.
        """
        if value is None:
            return cls.BASH
        if isinstance(value, Operator):
            return value

        name = str(value).strip().lower()
        if not name:
            return cls.BASH
        try:
            return cls(name)
        except ValueError:
            logger.warning(f"Unknown operator '{value}', falling back to bash")
            return cls.BASH

    @property
    def is_shell(self) -> bool:
        return self in (Operator.BASH, Operator.CLI)


@dataclass(frozen=True)
class Catch:
    """Fallback command run when the primary command fails."""

    command: str


@dataclass(frozen=True)
class Reduce:
    """Command run once after fan-out with the joined successful items."""

    command: str


@dataclass(frozen=True)
class Resources:
    """Declared resource needs. Carried as metadata, never enforced."""

    cpu: int | None = None
    mem: str | None = None


@dataclass(frozen=True)
class Task:
    """
    A unit of work in a workflow.

    Tasks are data - they describe what to run, not how to run it.
    The runners interpret tasks and dispatch their commands.
    """

    name: str
    command: str = ""
    operator: Operator = Operator.BASH
    # Fan-out inputs (map operator only)
    input: tuple[str, ...] = ()
    catch: Catch | None = None
    reduce: Reduce | None = None
    # Passthrough metadata, not read by the runners
    output: tuple[str, ...] = ()
    depends_on: Any = None
    resources: Resources = field(default_factory=Resources)
    container: str | None = None
    extra: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def is_map(self) -> bool:
        return self.operator is Operator.MAP


@dataclass(frozen=True)
class Workflow:
    """
    An ordered, immutable collection of tasks.

    Order is execution order. Workflows define WHAT to do, not HOW to
    execute it.
    """

    name: str
    tasks: tuple[Task, ...] = ()
    source: Path | None = None

    def __len__(self) -> int:
        return len(self.tasks)

    def __iter__(self):
        return iter(self.tasks)

    def get_task(self, name: str) -> Task | None:
        """Get the first task with the given name."""
        for task in self.tasks:
            if task.name == name:
                return task
        return None

    def task_names(self) -> list[str]:
        return [task.name for task in self.tasks]
