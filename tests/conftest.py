"""Shared pytest fixtures for ergo tests."""

import logging
import sys
import textwrap

import pytest
from typer.testing import CliRunner

from ergo.dispatcher import CommandDispatcher


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path, monkeypatch):
    """Keep user config files and ERGO_* variables out of tests."""
    monkeypatch.setenv("ERGO_CONFIG_DIR", str(tmp_path / "ergo-config"))
    monkeypatch.delenv("ERGO_MAX_WORKERS", raising=False)
    monkeypatch.delenv("ERGO_TIMEOUT", raising=False)
    monkeypatch.chdir(tmp_path)
    yield
    # CLI runs attach handlers to the package logger
    logger = logging.getLogger("ergo")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    return CliRunner()


@pytest.fixture
def dispatcher():
    """Dispatcher using bash and the running interpreter."""
    return CommandDispatcher(shell="bash", python=sys.executable)


@pytest.fixture
def write_workflow(tmp_path):
    """Factory writing a workflow YAML file and returning its path."""

    def _write(text: str, name: str = "workflow.yaml"):
        path = tmp_path / name
        path.write_text(textwrap.dedent(text))
        return path

    return _write


@pytest.fixture
def sample_workflow_file(write_workflow):
    """Workflow covering plain, recovered and map tasks."""
    return write_workflow(
        """
        workflow:
          tasks:
            - name: greet
              operator: bash
              command: echo hello
            - name: flaky
              command: "false"
              catch:
                command: echo recovered
            - name: fanout
              operator: map
              input: [a, b, c]
              command: "test {item} != b"
              reduce:
                command: "echo tally: {results}"
        """
    )
