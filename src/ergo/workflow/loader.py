"""
Workflow loader - Parses workflow YAML files into Workflow objects.

Expected layout:

    workflow:
      tasks:
        - name: build
          operator: bash
          command: make
          catch:
            command: make clean all

Any read or parse problem is raised as SpecificationLoadError before a
single task runs.
"""

import logging
from pathlib import Path
from typing import Any

import yaml

from ..errors import SpecificationLoadError
from .tasks import Catch, Operator, Reduce, Resources, Task, Workflow

logger = logging.getLogger(__name__)

# Keys the loader maps onto Task fields; anything else lands in Task.extra
KNOWN_TASK_KEYS = {
    "name",
    "operator",
    "command",
    "input",
    "output",
    "catch",
    "reduce",
    "depends_on",
    "resources",
    "container",
}

# Plain scalars YAML would read as null; structural fields treat them as absent
NULL_SCALARS = frozenset({"", "~", "null", "Null", "NULL"})


class LiteralLoader(yaml.SafeLoader):
    """
    SafeLoader that keeps every plain scalar as its source text.

    Map inputs are substituted into commands verbatim, so `1.10` must stay
    "1.10" and `yes` must stay "yes". Only the merge key (`<<`) keeps its
    implicit resolution so anchors still work.
    """

    yaml_implicit_resolvers = {
        first: [(tag, regexp) for tag, regexp in resolvers if tag == "tag:yaml.org,2002:merge"]
        for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
    }


def load_workflow(path: Path) -> Workflow:
    """
    Load a workflow from a YAML file.

    Args:
        path: Workflow file

    Returns:
        Parsed Workflow named after the file stem

    Raises:
        SpecificationLoadError: File unreadable or malformed
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SpecificationLoadError(path, f"cannot read file: {e.strerror or e}", cause=e) from e

    return parse_workflow(text, name=path.stem, source=path)


def parse_workflow(text: str, name: str = "workflow", source: Path | None = None) -> Workflow:
    """
    Parse workflow YAML text.

    Args:
        text: YAML document
        name: Name given to the resulting workflow
        source: Originating file, used in error messages

    Raises:
        SpecificationLoadError: Text is not valid YAML or not a workflow
    """
    origin = source or Path(f"<{name}>")
    try:
        data = yaml.load(text, Loader=LiteralLoader)
    except yaml.YAMLError as e:
        raise SpecificationLoadError(origin, f"invalid YAML: {e}", cause=e) from e

    return workflow_from_dict(data, name=name, source=source)


def workflow_from_dict(data: Any, name: str = "workflow", source: Path | None = None) -> Workflow:
    """Build a Workflow from already-parsed YAML data."""
    origin = source or Path(f"<{name}>")

    if not isinstance(data, dict) or not isinstance(data.get("workflow"), dict):
        raise SpecificationLoadError(origin, "missing top-level 'workflow' mapping")

    raw_tasks = _get(data["workflow"], "tasks")
    if raw_tasks is None:
        raw_tasks = []
    if not isinstance(raw_tasks, list):
        raise SpecificationLoadError(origin, "'workflow.tasks' must be a list")

    tasks = []
    for idx, entry in enumerate(raw_tasks):
        try:
            tasks.append(_parse_task(entry, idx))
        except ValueError as e:
            raise SpecificationLoadError(origin, f"task #{idx + 1}: {e}", cause=e) from e

    logger.debug(f"Loaded {len(tasks)} tasks from {origin}")
    return Workflow(name=name, tasks=tuple(tasks), source=source)


def _parse_task(entry: Any, idx: int) -> Task:
    """Parse one task mapping. Raises ValueError on malformed fields."""
    if not isinstance(entry, dict):
        raise ValueError("task entry must be a mapping")

    name = _get(entry, "name")
    name = f"task-{idx + 1}" if name is None else str(name)

    operator = Operator.parse(_get(entry, "operator"))

    command = _get(entry, "command")
    command = "" if command is None else str(command)

    catch_cmd = _nested_command(entry, "catch")
    reduce_cmd = _nested_command(entry, "reduce")

    return Task(
        name=name,
        command=command,
        operator=operator,
        input=_string_list(_get(entry, "input"), "input"),
        catch=Catch(catch_cmd) if catch_cmd else None,
        reduce=Reduce(reduce_cmd) if reduce_cmd else None,
        output=_string_list(_get(entry, "output"), "output"),
        depends_on=_get(entry, "depends_on"),
        resources=_parse_resources(_get(entry, "resources")),
        container=_optional_str(_get(entry, "container")),
        extra={k: v for k, v in entry.items() if k not in KNOWN_TASK_KEYS},
    )


def _get(mapping: dict, key: str) -> Any:
    """Read key from a mapping; null spellings come back as None."""
    value = mapping.get(key)
    if isinstance(value, str) and value in NULL_SCALARS:
        return None
    return value


def _optional_str(value: Any) -> str | None:
    return None if value is None else str(value)


def _nested_command(entry: dict, key: str) -> str:
    """Read `<key>.command`; an empty command counts as absent."""
    section = _get(entry, key)
    if section is None:
        return ""
    if not isinstance(section, dict):
        raise ValueError(f"'{key}' must be a mapping with a 'command' key")
    command = _get(section, "command")
    return "" if command is None else str(command)


def _string_list(value: Any, key: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, (str, bytes)) or not isinstance(value, list):
        raise ValueError(f"'{key}' must be a list")
    return tuple(str(item) for item in value)


def _parse_resources(value: Any) -> Resources:
    if value is None:
        return Resources()
    if not isinstance(value, dict):
        raise ValueError("'resources' must be a mapping")

    cpu = _get(value, "cpu")
    if cpu is not None:
        try:
            cpu = int(cpu)
        except (TypeError, ValueError):
            raise ValueError(f"'resources.cpu' must be an integer, got {cpu!r}") from None

    return Resources(cpu=cpu, mem=_optional_str(_get(value, "mem")))
