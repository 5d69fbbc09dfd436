"""Default test execution engine: runs pytest in a child process.

Targets are chosen from the run configuration and the search sources, the
child's output is streamed to the session output, and a JUnit XML report is
parsed into per-file results once the child exits. Interrupting the run's
token terminates the child.
"""

from __future__ import annotations

import asyncio
import logging
import os
import subprocess
import tempfile
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any, Callable, TextIO

from .cancellation import CancellationToken
from .changed_files import ChangedFiles
from .exceptions import EngineLaunchError
from .failed_tests_cache import FailedTestsCache
from .models import (
    ProjectContext,
    RunConfiguration,
    RunResultSummary,
    TestCaseResult,
    TestFileResult,
    TestStatus,
    UpdateSnapshotPolicy,
    WatchMode,
)
from .search_source import SearchSource

logger = logging.getLogger(__name__)

READ_CHUNK = 4096
SNAPSHOT_MARKER = "snapshot"
SNAPSHOT_UPDATE_FLAG = "--snapshot-update"


class NoTestsSelected(Exception):
    """Internal signal: the configuration selects nothing to run."""


def parse_junit_xml(
    report: str | Path,
    root_dir: str | Path,
    *,
    snapshot_marker: str = SNAPSHOT_MARKER,
) -> list[TestFileResult]:
    """Parse an xunit1 JUnit report into per-file results, in report order."""
    tree = ET.parse(report)
    root = Path(root_dir)
    by_file: dict[str, TestFileResult] = {}

    for case in tree.iter("testcase"):
        file_attr = case.get("file") or ""
        classname = case.get("classname", "")
        name = case.get("name", "")
        if file_attr:
            test_file = str((root / file_attr).resolve())
            module = file_attr[: -len(".py")].replace(os.sep, ".").replace("/", ".")
        else:
            module = classname
            test_file = str((root / (classname.replace(".", os.sep) + ".py")).resolve())
        class_part = classname[len(module):].lstrip(".") if classname.startswith(module) else ""
        full_name = "::".join(p for p in (class_part.replace(".", "::"), name) if p)

        status = TestStatus.PASSED
        message: str | None = None
        for tag, tag_status in (("failure", TestStatus.FAILED), ("error", TestStatus.ERROR)):
            element = case.find(tag)
            if element is not None:
                status = tag_status
                message = "\n".join(
                    part for part in (element.get("message"), element.text) if part
                )
                break
        else:
            if case.find("skipped") is not None:
                status = TestStatus.SKIPPED

        file_result = by_file.setdefault(test_file, TestFileResult(test_file_path=test_file))
        file_result.test_results.append(
            TestCaseResult(name=name, full_name=full_name, status=status, failure_message=message)
        )
        if status is not TestStatus.PASSED and message and snapshot_marker in message.lower():
            file_result.snapshot_failed = True

    return list(by_file.values())


class PytestEngine:
    """Runs the configured test command (pytest by default) for each run."""

    def __init__(self, *, snapshot_marker: str = SNAPSHOT_MARKER) -> None:
        self.snapshot_marker = snapshot_marker

    async def __call__(
        self,
        *,
        contexts: list[ProjectContext],
        config: RunConfiguration,
        token: CancellationToken,
        failed_tests_cache: FailedTestsCache,
        changed_files: asyncio.Future[ChangedFiles | None],
        on_complete: Callable[[RunResultSummary], None],
        output: TextIO,
        start_run: Callable[[RunConfiguration], Any],
    ) -> None:
        try:
            targets = await self.select_targets(contexts, config, failed_tests_cache, changed_files)
        except NoTestsSelected as e:
            output.write(f"\n{e}\n")
            on_complete(RunResultSummary(interrupted=token.is_interrupted()))
            return

        if token.is_interrupted():
            on_complete(RunResultSummary(interrupted=True))
            return

        with tempfile.TemporaryDirectory(prefix="watch-controller-") as tmpdir:
            report = Path(tmpdir) / "report.xml"
            argv = self.build_command(config, targets, report)
            returncode = await self._execute(argv, config.root_dir, token, output)
            logger.debug("Test command exited with %s", returncode)
            results: list[TestFileResult] = []
            if report.exists():
                try:
                    results = parse_junit_xml(
                        report, config.root_dir, snapshot_marker=self.snapshot_marker
                    )
                except ET.ParseError as e:
                    logger.warning("Could not parse test report: %s", e)

        on_complete(RunResultSummary.from_test_results(results, interrupted=token.is_interrupted()))

    async def select_targets(
        self,
        contexts: list[ProjectContext],
        config: RunConfiguration,
        failed_tests_cache: FailedTestsCache,
        changed_files: asyncio.Future[ChangedFiles | None],
    ) -> list[str]:
        """Pick what to pass to the test command.

        Raises:
            NoTestsSelected: If the configuration selects no tests.
        """
        sources = [SearchSource(context) for context in contexts]

        if config.test_path_pattern:
            paths = [p for s in sources for p in s.find_matching_tests(config.test_path_pattern)]
            if not paths:
                raise NoTestsSelected(
                    "No tests found, exiting with code 0\n"
                    f"Pattern: {config.test_path_pattern} - 0 matches"
                )
        else:
            paths = []

        if config.only_failures:
            node_ids = failed_tests_cache.failed_node_ids(paths or None)
            if not node_ids:
                raise NoTestsSelected("No failed test found.")
            return node_ids

        if paths:
            return paths

        if config.mode == WatchMode.WATCH and not config.test_name_pattern:
            changed = await changed_files
            if changed is not None:
                related = sorted(
                    {p for s in sources for p in s.find_related_tests(changed.changed_files)}
                )
                if not related:
                    raise NoTestsSelected(
                        "No tests found related to files changed since last commit.\n"
                        "Press `a` to run all tests, or run with `--watch-all`."
                    )
                return related

        return [root for context in contexts for root in context.config.watch_roots]

    def build_command(
        self,
        config: RunConfiguration,
        targets: list[str],
        report: Path,
    ) -> list[str]:
        argv = list(config.test_command)
        argv += ["-o", "junit_family=xunit1", f"--junitxml={report}"]
        if config.test_name_pattern:
            argv += ["-k", config.test_name_pattern]
        if config.update_snapshot == UpdateSnapshotPolicy.ALL:
            argv.append(SNAPSHOT_UPDATE_FLAG)
        argv += targets
        return argv

    async def _execute(
        self,
        argv: list[str],
        cwd: str,
        token: CancellationToken,
        output: TextIO,
    ) -> int:
        logger.info("Running %s", " ".join(argv))
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=cwd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
            )
        except OSError as e:
            raise EngineLaunchError(command=" ".join(argv), cause=e) from e

        def on_interrupt(_token: CancellationToken) -> None:
            if process.returncode is None:
                logger.info("Run interrupted, terminating test process %d", process.pid)
                process.terminate()

        token.add_listener(on_interrupt)
        try:
            if token.is_interrupted():
                on_interrupt(token)
            assert process.stdout is not None
            while True:
                chunk = await process.stdout.read(READ_CHUNK)
                if not chunk:
                    break
                output.write(chunk.decode(errors="replace"))
                output.flush()
            return await process.wait()
        except asyncio.CancelledError:
            if process.returncode is None:
                process.kill()
            raise
        finally:
            token.remove_listener(on_interrupt)
