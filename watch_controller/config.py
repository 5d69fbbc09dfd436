"""Config loading and merging.

Settings come from a global file, a project-local file and command-line
overrides, merged in that order and decoded into dataclasses with dacite.
"""

from __future__ import annotations

import copy
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import dacite

from .exceptions import ConfigLoadError, ConfigValidationError, record_error
from .models import (
    DEFAULT_TEST_COMMAND,
    ProjectConfig,
    RunConfiguration,
    WatchMode,
)

logger = logging.getLogger(__name__)

# Configuration file locations
CONFIG_DIR = Path.home() / ".config" / "watch-controller"
GLOBAL_CONFIG_PATH = CONFIG_DIR / "config.json"
PROJECT_CONFIG_FILENAME = ".watch-controller.json"


# =============================================================================
# File Schema
# =============================================================================


@dataclass
class RunOptions:
    """The ``run`` section of a settings file."""

    watch_all: bool = False
    only_failures: bool = False
    no_scm: bool = False
    test_name_pattern: str = ""
    test_path_pattern: str = ""
    watch_plugins: list[str] = field(default_factory=list)
    test_command: list[str] = field(default_factory=lambda: list(DEFAULT_TEST_COMMAND))


@dataclass
class ProjectOptions:
    """One entry of the ``projects`` section of a settings file."""

    root_dir: str = "."
    roots: list[str] = field(default_factory=list)
    test_match: list[str] = field(default_factory=lambda: ["test_*.py", "*_test.py"])
    module_file_extensions: list[str] = field(default_factory=lambda: [".py"])
    coverage_directory: str = "htmlcov"
    watch_path_ignore_patterns: list[str] = field(default_factory=list)
    snapshot_extensions: list[str] = field(default_factory=lambda: [".ambr", ".snap"])


@dataclass
class SettingsFile:
    run: RunOptions = field(default_factory=RunOptions)
    projects: list[ProjectOptions] = field(default_factory=list)


@dataclass
class WatchSettings:
    """Resolved settings for one watch session."""

    run: RunConfiguration
    projects: list[ProjectConfig]


# =============================================================================
# Merging
# =============================================================================


def merge_configs(base: dict, override: dict) -> dict:
    """
    Merge ``override`` into ``base``.

    Rules:
    - Scalars: override wins
    - Lists: override replaces (no merge)
    - Dicts: recursive merge
    - None in override: removes key from base

    Args:
        base: The base configuration dictionary
        override: The override configuration dictionary

    Returns:
        Merged configuration dictionary
    """
    result = copy.deepcopy(base)

    for key, value in override.items():
        if value is None:
            result.pop(key, None)
        elif isinstance(value, dict) and key in result and isinstance(result[key], dict):
            result[key] = merge_configs(result[key], value)
        else:
            result[key] = value

    return result


# =============================================================================
# Loading
# =============================================================================


def read_config_file(path: str | Path) -> dict:
    """
    Read one JSON settings file.

    Returns:
        The parsed dictionary, or an empty dict if the file does not exist.

    Raises:
        ConfigLoadError: If the file exists but cannot be read or parsed.
    """
    config_path = Path(path)
    if not config_path.exists():
        logger.debug("No config found at %s", config_path)
        return {}

    try:
        with open(config_path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        logger.error("Invalid JSON in config file: %s", e)
        record_error(e)
        raise ConfigLoadError(
            f"Invalid JSON in config file at line {e.lineno}",
            file_path=str(config_path),
            context={"line": e.lineno, "column": e.colno},
            cause=e,
        ) from e
    except OSError as e:
        logger.error("Failed to read config file: %s", e)
        record_error(e)
        raise ConfigLoadError(
            "Failed to read config file",
            file_path=str(config_path),
            cause=e,
        ) from e

    if not isinstance(data, dict):
        raise ConfigLoadError(
            "Config file must contain a JSON object",
            file_path=str(config_path),
        )
    logger.debug("Loaded config from %s", config_path)
    return data


def parse_settings(data: dict, root_dir: str | Path) -> WatchSettings:
    """
    Decode merged settings data into a ``WatchSettings``.

    Raises:
        ConfigValidationError: If the data does not match the schema.
    """
    try:
        settings = dacite.from_dict(
            data_class=SettingsFile,
            data=data,
            config=dacite.Config(strict=True),
        )
    except dacite.DaciteError as e:
        logger.error("Config schema validation failed: %s", e)
        record_error(e)
        raise ConfigValidationError(
            f"Config schema validation failed: {e}",
            cause=e,
        ) from e

    root = Path(root_dir).resolve()
    run = RunConfiguration(
        mode=WatchMode.WATCH_ALL if settings.run.watch_all else WatchMode.WATCH,
        test_name_pattern=settings.run.test_name_pattern,
        test_path_pattern=settings.run.test_path_pattern,
        only_failures=settings.run.only_failures,
        no_scm=settings.run.no_scm,
        root_dir=str(root),
        watch_plugins=tuple(settings.run.watch_plugins),
        test_command=tuple(settings.run.test_command),
    )
    if not run.test_command:
        raise ConfigValidationError(
            "test_command must not be empty",
            field="run.test_command",
            expected="a non-empty list of arguments",
        )

    project_options = settings.projects or [ProjectOptions()]
    projects = [_project_config(options, root) for options in project_options]
    return WatchSettings(run=run, projects=projects)


def _project_config(options: ProjectOptions, root: Path) -> ProjectConfig:
    project_root = (root / options.root_dir).resolve()
    return ProjectConfig(
        root_dir=str(project_root),
        roots=tuple(str((project_root / r).resolve()) for r in options.roots),
        test_match=tuple(options.test_match),
        module_file_extensions=tuple(options.module_file_extensions),
        coverage_directory=options.coverage_directory,
        watch_path_ignore_patterns=tuple(options.watch_path_ignore_patterns),
        snapshot_extensions=tuple(options.snapshot_extensions),
    )


def load_settings(
    root_dir: str | Path = ".",
    *,
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> WatchSettings:
    """
    Load settings for a session rooted at ``root_dir``.

    Merge order: global file, then ``config_path`` (or the project-local
    ``.watch-controller.json``), then ``overrides``.
    """
    data = read_config_file(GLOBAL_CONFIG_PATH)
    local_path = Path(config_path) if config_path else Path(root_dir) / PROJECT_CONFIG_FILENAME
    if config_path and not local_path.exists():
        raise ConfigLoadError("Config file not found", file_path=str(local_path))
    data = merge_configs(data, read_config_file(local_path))
    if overrides:
        data = merge_configs(data, overrides)
    return parse_settings(data, root_dir)


def get_config_dir() -> Path:
    return CONFIG_DIR


def get_project_config_path(root_dir: str | Path) -> Path:
    return Path(os.path.abspath(root_dir)) / PROJECT_CONFIG_FILENAME
