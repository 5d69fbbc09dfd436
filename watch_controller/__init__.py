"""Interactive watch mode for test suites.

Re-runs tests when files change or when a key is pressed, with filename and
test name filters, failed-only runs, snapshot updates and pluggable hotkeys.

Public API Usage:
    # Run a session programmatically
    import asyncio
    import sys

    from watch_controller import WatchSession, create_context, crawl_project, load_settings

    settings = load_settings(".")
    contexts = [create_context(p, *crawl_project(p)) for p in settings.projects]
    session = WatchSession(settings.run, contexts, sys.stdout)
    asyncio.run(session.run())

    # Plug in a different test runner
    session = WatchSession(settings.run, contexts, sys.stdout, engine=my_engine)
"""

__version__ = "0.1.0"

# =============================================================================
# Session
# =============================================================================

from watch_controller.watch import WatchSession
from watch_controller.run_coordinator import ExecutionEngine, RunCoordinator
from watch_controller.engine import PytestEngine, parse_junit_xml

# =============================================================================
# Core Data Models
# =============================================================================

from watch_controller.models import (
    # Run configuration
    WatchMode,
    UpdateSnapshotPolicy,
    RunConfiguration,
    update_run_config,
    # Projects
    ProjectConfig,
    ProjectContext,
    FileIndex,
    ModuleMap,
    SearchSourceBinding,
    create_context,
    # Changes
    ChangeType,
    ChangeEvent,
    ChangeBatch,
    # Results
    TestStatus,
    TestCaseResult,
    TestFileResult,
    RunResultSummary,
    UsageDisplayState,
)
from watch_controller.cancellation import CancellationToken
from watch_controller.modality import ModalityKind, ModalityState

# =============================================================================
# Collaborators
# =============================================================================

from watch_controller.changes import ChangeReactor, crawl_project, watch_project
from watch_controller.changed_files import ChangedFiles, get_changed_files
from watch_controller.failed_tests_cache import FailedTestsCache
from watch_controller.plugins import PluginDescriptor, WatchPlugin, WatchPluginRegistry
from watch_controller.search_source import SearchSource

# =============================================================================
# Configuration
# =============================================================================

from watch_controller.config import (
    WatchSettings,
    load_settings,
    merge_configs,
    get_config_dir,
    get_project_config_path,
)

# =============================================================================
# Public API Exports
# =============================================================================

__all__ = [
    # Version info
    "__version__",
    # Session
    "WatchSession",
    "ExecutionEngine",
    "RunCoordinator",
    "PytestEngine",
    "parse_junit_xml",
    # Run configuration
    "WatchMode",
    "UpdateSnapshotPolicy",
    "RunConfiguration",
    "update_run_config",
    # Projects
    "ProjectConfig",
    "ProjectContext",
    "FileIndex",
    "ModuleMap",
    "SearchSourceBinding",
    "create_context",
    # Changes
    "ChangeType",
    "ChangeEvent",
    "ChangeBatch",
    # Results
    "TestStatus",
    "TestCaseResult",
    "TestFileResult",
    "RunResultSummary",
    "UsageDisplayState",
    "CancellationToken",
    "ModalityKind",
    "ModalityState",
    # Collaborators
    "ChangeReactor",
    "crawl_project",
    "watch_project",
    "ChangedFiles",
    "get_changed_files",
    "FailedTestsCache",
    "PluginDescriptor",
    "WatchPlugin",
    "WatchPluginRegistry",
    "SearchSource",
    # Configuration
    "WatchSettings",
    "load_settings",
    "merge_configs",
    "get_config_dir",
    "get_project_config_path",
]
