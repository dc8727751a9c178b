"""
Configuration management with YAML loading and environment variable support.
"""

import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .constants import (
    CONFIG_FILE_NAMES,
    DEFAULT_MAX_WORKERS,
    ITEM_PLACEHOLDER,
    POSIX_SHELL,
    RESULTS_PLACEHOLDER,
    RESULTS_SEPARATOR,
    WINDOWS_SHELL,
)
from .errors import ConfigurationError


def _default_shell() -> str:
    return WINDOWS_SHELL if os.name == "nt" else POSIX_SHELL


def _env_float(env_var: str, default: float | None = None) -> float | None:
    """Get a float from an environment variable or return default."""
    if value := os.environ.get(env_var):
        try:
            return float(value)
        except ValueError:
            return default
    return default


def _env_int(env_var: str, default: int) -> int:
    """Get an int from an environment variable or return default."""
    if value := os.environ.get(env_var):
        try:
            return int(value)
        except ValueError:
            return default
    return default


@dataclass
class ExecutionConfig:
    """How commands are handed to the host."""

    shell: str = field(default_factory=_default_shell)
    python: str = field(default_factory=lambda: sys.executable or "python")
    # Seconds before a running command is killed; None = wait forever
    timeout: float | None = field(default_factory=lambda: _env_float("ERGO_TIMEOUT"))
    stream_output: bool = True


@dataclass
class FanoutConfig:
    max_workers: int = field(default_factory=lambda: _env_int("ERGO_MAX_WORKERS", DEFAULT_MAX_WORKERS))
    # Fail the whole map task when any item is excluded
    fail_on_partial: bool = False
    item_placeholder: str = ITEM_PLACEHOLDER
    results_placeholder: str = RESULTS_PLACEHOLDER
    separator: str = RESULTS_SEPARATOR


@dataclass
class LoggingConfig:
    level: str = "WARNING"
    console_logging: bool = True
    file: Path | None = None


SECTIONS = ("execution", "fanout", "logging")


@dataclass
class AppConfig:
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    fanout: FanoutConfig = field(default_factory=FanoutConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Raises:
            ConfigurationError: File is not valid YAML or not a mapping
        """
        if not path.exists():
            return cls()

        with open(path) as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError([f"{path}: invalid YAML: {e}"]) from e

        if not isinstance(data, dict):
            raise ConfigurationError([f"{path}: expected a mapping of sections, got {type(data).__name__}"])

        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: dict) -> "AppConfig":
        """Create config from dictionary. Unknown keys are ignored."""
        config = cls()

        for attr in SECTIONS:
            section_data = data.get(attr)
            if not isinstance(section_data, dict):
                continue
            section = getattr(config, attr)
            for key, value in section_data.items():
                if hasattr(section, key):
                    setattr(section, key, value)

        if isinstance(config.logging.file, str):
            config.logging.file = Path(config.logging.file)

        return config

    def _to_dict(self) -> dict:
        """Convert config to dictionary."""
        result = {}
        for attr in SECTIONS:
            section = getattr(self, attr)
            result[attr] = {
                key: str(value) if isinstance(value, Path) else value for key, value in vars(section).items()
            }
        return result

    def with_overrides(
        self,
        max_workers: int | None = None,
        timeout: float | None = None,
        fail_on_partial: bool | None = None,
    ) -> "AppConfig":
        """Return a copy with command-line overrides applied."""
        merged = AppConfig._from_dict(self._to_dict())
        if max_workers is not None:
            merged.fanout.max_workers = max_workers
        if timeout is not None:
            merged.execution.timeout = timeout
        if fail_on_partial is not None:
            merged.fanout.fail_on_partial = fail_on_partial
        return merged


def _get_default_config_dir() -> Path:
    """Get default config directory."""
    # Check environment variable first
    if config_dir := os.environ.get("ERGO_CONFIG_DIR"):
        return Path(config_dir)

    # Check XDG config home
    if xdg_config := os.environ.get("XDG_CONFIG_HOME"):
        return Path(xdg_config) / "ergo"

    # Fall back to ~/.config
    return Path.home() / ".config" / "ergo"


def load_config(config_path: Path | None = None, config_dir: Path | None = None) -> AppConfig:
    """
    Load configuration.

    Args:
        config_path: Path to config file (default: searches standard locations)
        config_dir: Directory searched when config_path is not given

    Returns:
        AppConfig, defaults when no file is found
    """
    if config_path is None:
        if config_dir is None:
            config_dir = _get_default_config_dir()

        search_paths = [config_dir / name for name in CONFIG_FILE_NAMES]
        search_paths.append(Path.cwd() / "ergo.yaml")
        for path in search_paths:
            if path.exists():
                config_path = path
                break

    return AppConfig.from_yaml(config_path) if config_path else AppConfig()


def validate_config(config: AppConfig) -> list[str]:
    """
    Validate configuration values.

    Returns:
        List of error messages (empty if valid)
    """
    errors = []

    workers = config.fanout.max_workers
    if isinstance(workers, bool) or not isinstance(workers, int) or workers < 1:
        errors.append(f"fanout.max_workers must be a positive integer, got {workers!r}")

    timeout = config.execution.timeout
    if timeout is not None:
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
            errors.append(f"execution.timeout must be a positive number of seconds, got {timeout!r}")

    if not config.fanout.item_placeholder:
        errors.append("fanout.item_placeholder must not be empty")
    if not config.fanout.results_placeholder:
        errors.append("fanout.results_placeholder must not be empty")

    if not isinstance(logging.getLevelName(str(config.logging.level).upper()), int):
        errors.append(f"logging.level is not a known level: {config.logging.level!r}")

    if not config.execution.shell:
        errors.append("execution.shell must not be empty")
    if not config.execution.python:
        errors.append("execution.python must not be empty")

    return errors
