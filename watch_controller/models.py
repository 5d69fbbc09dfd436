"""Core dataclasses for run configuration, project contexts and run results.

Run-affecting options live in the immutable ``RunConfiguration``; every
watch-mode interaction produces a new value through ``update_run_config``.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, Mapping

from .exceptions import ConfigValidationError


# =============================================================================
# Run Configuration
# =============================================================================


class WatchMode(Enum):
    """Which tests a watch run selects when no pattern is set."""

    WATCH = "watch"  # Only tests related to changed files
    WATCH_ALL = "watch-all"  # Every test


class UpdateSnapshotPolicy(Enum):
    """Whether failing snapshots are rewritten during a run."""

    NONE = "none"
    ALL = "all"


DEFAULT_TEST_COMMAND = ("python", "-m", "pytest")


@dataclass(frozen=True)
class RunConfiguration:
    """Immutable snapshot of the options that affect a test run."""

    mode: WatchMode = WatchMode.WATCH
    test_name_pattern: str = ""  # "" means unset
    test_path_pattern: str = ""  # "" means unset
    only_failures: bool = False
    update_snapshot: UpdateSnapshotPolicy = UpdateSnapshotPolicy.NONE
    no_scm: bool = False

    # Pass-through options owned by collaborators
    root_dir: str = "."
    watch_plugins: tuple[str, ...] = ()
    test_command: tuple[str, ...] = DEFAULT_TEST_COMMAND
    pass_with_no_tests: bool = False

    @property
    def has_filters(self) -> bool:
        """True when either pattern narrows the run."""
        return bool(self.test_name_pattern or self.test_path_pattern)


_RUN_CONFIG_FIELDS = frozenset(f.name for f in dataclasses.fields(RunConfiguration))


def update_run_config(config: RunConfiguration, **patch: Any) -> RunConfiguration:
    """Return a new configuration with ``patch`` merged over ``config``.

    Raises:
        ConfigValidationError: If the patch names an unknown option.
    """
    unknown = sorted(set(patch) - _RUN_CONFIG_FIELDS)
    if unknown:
        raise ConfigValidationError(
            "Unknown run configuration option",
            field=unknown[0],
            expected=", ".join(sorted(_RUN_CONFIG_FIELDS)),
        )
    if "mode" in patch and not isinstance(patch["mode"], WatchMode):
        patch["mode"] = WatchMode(patch["mode"])
    if "update_snapshot" in patch and not isinstance(
        patch["update_snapshot"], UpdateSnapshotPolicy
    ):
        patch["update_snapshot"] = UpdateSnapshotPolicy(patch["update_snapshot"])
    return dataclasses.replace(config, **patch)


# =============================================================================
# Project Contexts
# =============================================================================


@dataclass(frozen=True)
class ProjectConfig:
    """Per-project options used to index, filter and search files."""

    root_dir: str
    roots: tuple[str, ...] = ()  # Directories to watch (default: root_dir)
    test_match: tuple[str, ...] = ("test_*.py", "*_test.py")
    module_file_extensions: tuple[str, ...] = (".py",)
    coverage_directory: str = "htmlcov"
    watch_path_ignore_patterns: tuple[str, ...] = ()
    snapshot_extensions: tuple[str, ...] = (".ambr", ".snap")

    @property
    def watch_roots(self) -> tuple[str, ...]:
        """Directories to watch, falling back to the project root."""
        return self.roots or (self.root_dir,)


@dataclass(frozen=True)
class FileIndex:
    """The set of files currently known for a project."""

    files: frozenset[str] = frozenset()

    @classmethod
    def from_paths(cls, paths: Iterable[str | Path]) -> FileIndex:
        return cls(frozenset(str(Path(p)) for p in paths))

    def exists(self, path: str | Path) -> bool:
        return str(Path(path)) in self.files

    def matching(self, predicate: Callable[[str], bool]) -> list[str]:
        """Return indexed paths accepted by ``predicate`` in sorted order."""
        return sorted(p for p in self.files if predicate(p))

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self.files))

    def __len__(self) -> int:
        return len(self.files)


@dataclass(frozen=True)
class ModuleMap:
    """Dotted module names mapped to the files defining them."""

    modules: Mapping[str, str] = field(default_factory=dict)

    def get_path(self, module_name: str) -> str | None:
        return self.modules.get(module_name)

    def module_for_path(self, path: str | Path) -> str | None:
        target = str(Path(path))
        for name, module_path in self.modules.items():
            if module_path == target:
                return name
        return None

    def __len__(self) -> int:
        return len(self.modules)


@dataclass(frozen=True)
class ProjectContext:
    """A project's configuration together with its current file state."""

    config: ProjectConfig
    file_index: FileIndex
    module_map: ModuleMap


def create_context(
    config: ProjectConfig,
    file_index: FileIndex,
    module_map: ModuleMap,
) -> ProjectContext:
    """Build a fresh project context from a refreshed index and module map."""
    return ProjectContext(config=config, file_index=file_index, module_map=module_map)


@dataclass(frozen=True)
class SearchSourceBinding:
    """A project context paired with the search index derived from it."""

    context: ProjectContext
    search_source: Any  # SearchSource; typed loosely to avoid an import cycle


# =============================================================================
# Filesystem Changes
# =============================================================================


class ChangeType(Enum):
    """Kind of filesystem change (mirrors watchfiles.Change)."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


@dataclass(frozen=True)
class ChangeEvent:
    """A single filesystem change."""

    change_type: ChangeType
    file_path: str


@dataclass(frozen=True)
class ChangeBatch:
    """A batch of changes plus the project's refreshed file state."""

    events: tuple[ChangeEvent, ...]
    file_index: FileIndex
    module_map: ModuleMap


# =============================================================================
# Run Results
# =============================================================================


class TestStatus(Enum):
    """Outcome of a single test case."""

    __test__ = False  # Not a pytest test class

    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass
class TestCaseResult:
    """Result of one test case within a test file."""

    __test__ = False

    name: str  # Test function name (e.g., "test_login")
    full_name: str  # Qualified name (e.g., "TestAuth::test_login")
    status: TestStatus = TestStatus.PASSED
    failure_message: str | None = None

    @property
    def failed(self) -> bool:
        return self.status in (TestStatus.FAILED, TestStatus.ERROR)


@dataclass
class TestFileResult:
    """Results for every test case in one test file."""

    __test__ = False

    test_file_path: str
    test_results: list[TestCaseResult] = field(default_factory=list)
    snapshot_failed: bool = False

    @property
    def failed_tests(self) -> list[TestCaseResult]:
        return [t for t in self.test_results if t.failed]


@dataclass
class RunResultSummary:
    """Everything the controller learns from one completed run."""

    snapshot_failure: bool = False
    failed_snapshot_test_paths: list[str] = field(default_factory=list)
    test_results: list[TestFileResult] = field(default_factory=list)
    num_passed: int = 0
    num_failed: int = 0
    num_total: int = 0
    interrupted: bool = False

    @classmethod
    def from_test_results(
        cls,
        results: list[TestFileResult],
        *,
        interrupted: bool = False,
    ) -> RunResultSummary:
        """Summarize per-file results, keeping snapshot failures in file order."""
        snapshot_paths = [r.test_file_path for r in results if r.snapshot_failed]
        cases = [case for r in results for case in r.test_results]
        return cls(
            snapshot_failure=bool(snapshot_paths),
            failed_snapshot_test_paths=snapshot_paths,
            test_results=results,
            num_passed=sum(1 for c in cases if c.status == TestStatus.PASSED),
            num_failed=sum(1 for c in cases if c.failed),
            num_total=len(cases),
            interrupted=interrupted,
        )


# =============================================================================
# Display State
# =============================================================================


@dataclass
class UsageDisplayState:
    """Tracks which of full menu / toggle hint was last rendered."""

    should_show_full_usage: bool = True
    is_full_usage_currently_shown: bool = False
