"""
Dispatcher module - Runs one command string through the host interpreter.

Commands are never tokenized here: a shell-style task hands the whole
string to the platform shell, a python task hands it to the interpreter as
an inline program. Whatever the workflow file says is what runs.
"""

import logging
import os
import shlex
import signal
import subprocess
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import IO

from .config import ExecutionConfig
from .constants import PYTHON_SCRIPT_SUFFIX
from .errors import CommandExecutionError
from .workflow.tasks import Operator

logger = logging.getLogger(__name__)

OutputHandler = Callable[[str], None]


@dataclass
class CommandResult:
    """Result of a successful command."""

    command: str
    returncode: int
    stdout: str = ""
    stderr: str = ""
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.returncode == 0


def _drain(stream: IO[str], sink: list[str]) -> None:
    for chunk in stream:
        sink.append(chunk)


class CommandDispatcher:
    """
    Executes command strings and captures their output.

    Stdout is streamed line by line to an optional handler while the
    command runs, and is also returned in full on the CommandResult.
    """

    def __init__(
        self,
        shell: str = "bash",
        python: str = "python",
        timeout: float | None = None,
        stream_output: bool = True,
    ):
        self.shell = shell
        self.python = python
        self.timeout = timeout
        self.stream_output = stream_output

    @classmethod
    def from_config(cls, config: ExecutionConfig) -> "CommandDispatcher":
        return cls(
            shell=config.shell,
            python=config.python,
            timeout=config.timeout,
            stream_output=config.stream_output,
        )

    def build_argv(self, command: str, operator: Operator = Operator.BASH) -> list[str]:
        """
        Build the argv that runs command in the given operator style.

        Raises:
            ValueError: For MAP, whose commands are expanded per item first
        """
        if operator is Operator.MAP:
            raise ValueError("map commands are dispatched per item by the fan-out runner")

        if operator is Operator.PYTHON:
            if command.strip().endswith(PYTHON_SCRIPT_SUFFIX):
                # Script file, possibly with arguments before it: let the shell resolve it
                return self._shell_argv(f"{shlex.quote(self.python)} {command.strip()}")
            return [self.python, "-c", command]

        return self._shell_argv(command)

    def _shell_argv(self, command: str) -> list[str]:
        if Path(self.shell).name.lower() in ("cmd", "cmd.exe"):
            return [self.shell, "/C", command]
        return [self.shell, "-c", command]

    def run(
        self,
        command: str,
        operator: Operator = Operator.BASH,
        on_output: OutputHandler | None = None,
    ) -> CommandResult:
        """
        Run a command to completion.

        Args:
            command: Command string from the workflow
            operator: Execution style
            on_output: Called with each stdout line as it arrives

        Returns:
            CommandResult with buffered stdout/stderr

        Raises:
            CommandExecutionError: Launch failure, non-zero exit or timeout
        """
        argv = self.build_argv(command, operator)
        logger.debug(f"Dispatching ({operator.value}): {argv}")

        start = time.monotonic()
        try:
            proc = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
                bufsize=1,
                start_new_session=os.name != "nt",
            )
        except OSError as e:
            logger.error(f"Failed to launch {argv[0]}: {e}")
            raise CommandExecutionError(command, stderr=str(e), cause=e) from e

        stderr_chunks: list[str] = []
        stderr_reader = threading.Thread(target=_drain, args=(proc.stderr, stderr_chunks), daemon=True)
        stderr_reader.start()

        timed_out = threading.Event()
        timer = None
        if self.timeout:
            timer = threading.Timer(self.timeout, self._expire, args=(proc, timed_out))
            timer.daemon = True
            timer.start()

        stdout_lines: list[str] = []
        try:
            for line in proc.stdout:
                stdout_lines.append(line)
                if on_output and self.stream_output:
                    on_output(line.rstrip("\r\n"))
            returncode = proc.wait()
        except BaseException:
            # Output handler raised or interrupted; reap the child before joining its pipes
            self._kill(proc)
            proc.wait()
            raise
        finally:
            if timer:
                timer.cancel()
            stderr_reader.join()
            proc.stdout.close()
            proc.stderr.close()

        stdout = "".join(stdout_lines)
        stderr = "".join(stderr_chunks)
        duration = time.monotonic() - start

        if timed_out.is_set():
            logger.warning(f"Command timed out after {self.timeout}s: {command}")
            raise CommandExecutionError(command, returncode=returncode, stderr=stderr, stdout=stdout, timed_out=True)

        if returncode != 0:
            logger.info(f"Command exited with status {returncode}: {command}")
            raise CommandExecutionError(command, returncode=returncode, stderr=stderr, stdout=stdout)

        return CommandResult(
            command=command,
            returncode=returncode,
            stdout=stdout,
            stderr=stderr,
            duration_seconds=duration,
        )

    @classmethod
    def _expire(cls, proc: subprocess.Popen, timed_out: threading.Event) -> None:
        timed_out.set()
        cls._kill(proc)

    @staticmethod
    def _kill(proc: subprocess.Popen) -> None:
        """Kill the command and anything it spawned."""
        try:
            if os.name != "nt":
                os.killpg(proc.pid, signal.SIGKILL)
            else:
                proc.kill()
        except (ProcessLookupError, PermissionError):
            pass
