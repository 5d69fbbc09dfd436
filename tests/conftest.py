"""Shared fixtures for watch controller tests."""

from __future__ import annotations

import io
from typing import Any
from unittest.mock import AsyncMock, Mock

import pytest

from tests.helpers import FakeEngine
from watch_controller.models import (
    FileIndex,
    ModuleMap,
    ProjectConfig,
    RunConfiguration,
    create_context,
)
from watch_controller.plugins import WatchPluginRegistry
from watch_controller.watch import WatchSession


@pytest.fixture
def project_config(tmp_path) -> ProjectConfig:
    return ProjectConfig(root_dir=str(tmp_path))


@pytest.fixture
def project_context(tmp_path, project_config):
    files = [
        tmp_path / "app.py",
        tmp_path / "test_app.py",
        tmp_path / "utils.py",
        tmp_path / "utils_test.py",
    ]
    return create_context(project_config, FileIndex.from_paths(files), ModuleMap())


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def output() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def make_session(engine, output, project_context, tmp_path):
    """Build a ``WatchSession`` wired to the fake engine."""

    def factory(**kwargs: Any) -> WatchSession:
        config = kwargs.pop("config", RunConfiguration(root_dir=str(tmp_path)))
        kwargs.setdefault("engine", engine)
        kwargs.setdefault("changed_files", AsyncMock(return_value=None))
        kwargs.setdefault("is_interactive", True)
        kwargs.setdefault("error_output", io.StringIO())
        kwargs.setdefault("exit_process", Mock())
        kwargs.setdefault("plugin_registry", WatchPluginRegistry(tmp_path))
        contexts = kwargs.pop("contexts", [project_context])
        return WatchSession(config, contexts, output, **kwargs)

    return factory
