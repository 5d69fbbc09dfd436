"""Run lifecycle: start, cooperative cancellation and completion.

``RunCoordinator.start_run`` is the single point where test runs begin. It
refuses to start while a run is in flight, so at most one engine call is
ever outstanding. Each run gets its own ``CancellationToken``; a fresh one
replaces it the moment the run completes, so an interrupt aimed at a
finished run can never reach the next one.
"""

from __future__ import annotations

import asyncio
import logging
import sys
import traceback
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol, TextIO

from rich.text import Text

from .cancellation import CancellationToken
from .changed_files import ChangedFiles, get_changed_files
from .exceptions import EngineFaultError, record_error
from .failed_tests_cache import FailedTestsCache
from .logging_config import log_exception
from .models import ProjectConfig, ProjectContext, RunConfiguration, RunResultSummary
from .terminal import CLEAR
from .usage import pre_run_message, render

logger = logging.getLogger(__name__)

ChangedFilesFn = Callable[
    [RunConfiguration, list[ProjectConfig]], Awaitable["ChangedFiles | None"]
]


class ExecutionEngine(Protocol):
    """Boundary of the test execution engine.

    The engine must call ``on_complete`` once with the run's summary and
    should poll or listen to ``token`` to stop early when interrupted.
    """

    def __call__(
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
    ) -> Awaitable[None]: ...


@dataclass
class _ActiveRun:
    run_id: int
    token: CancellationToken
    completed: bool = False
    task: asyncio.Future[None] | None = None


def _retrieve_exception(future: asyncio.Future) -> None:
    if not future.cancelled() and future.exception() is not None:
        logger.debug("Changed files computation failed: %s", future.exception())


class RunCoordinator:
    """Guards against concurrent runs and drives the execution engine."""

    def __init__(
        self,
        engine: ExecutionEngine,
        contexts: Callable[[], list[ProjectContext]],
        failed_tests_cache: FailedTestsCache,
        output: TextIO,
        *,
        changed_files: ChangedFilesFn = get_changed_files,
        error_output: TextIO | None = None,
        is_interactive: bool = False,
        on_complete: Callable[[RunResultSummary], None] | None = None,
        on_fault: Callable[[BaseException], None] | None = None,
    ) -> None:
        self._engine = engine
        self._contexts = contexts
        self._failed_tests_cache = failed_tests_cache
        self._output = output
        self._changed_files = changed_files
        self._error_output = error_output
        self._interactive = is_interactive
        self._on_complete = on_complete
        self._on_fault = on_fault

        self._token = CancellationToken(is_watch_mode=True)
        self._is_running = False
        self._run_count = 0
        self._active: _ActiveRun | None = None

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def token(self) -> CancellationToken:
        """The token the current (or next) run owns."""
        return self._token

    @property
    def run_count(self) -> int:
        return self._run_count

    def interrupt(self) -> None:
        """Ask the run in flight to stop; does nothing when idle."""
        if self._is_running:
            logger.info("Interrupting run %d", self._active.run_id if self._active else -1)
            self._token.interrupt()

    def start_run(self, config: RunConfiguration) -> asyncio.Future[None] | None:
        """Start a run with ``config`` unless one is already in progress."""
        if self._is_running:
            logger.debug("Run already in progress, ignoring start request")
            return None

        self._token = CancellationToken(is_watch_mode=True)
        self._is_running = True
        self._run_count += 1
        run = _ActiveRun(run_id=self._run_count, token=self._token)
        self._active = run
        logger.info(
            "Starting run %d (mode=%s, path=%r, name=%r, only_failures=%s, update_snapshot=%s)",
            run.run_id,
            config.mode.value,
            config.test_path_pattern,
            config.test_name_pattern,
            config.only_failures,
            config.update_snapshot.value,
        )

        def on_complete(results: RunResultSummary) -> None:
            if run.completed:
                logger.warning("Run %d reported completion twice, ignoring", run.run_id)
                return
            run.completed = True
            self._finish(run)
            logger.info(
                "Run %d complete: %d passed, %d failed, %d total%s",
                run.run_id,
                results.num_passed,
                results.num_failed,
                results.num_total,
                " (interrupted)" if results.interrupted else "",
            )
            if self._on_complete is not None:
                self._on_complete(results)

        changed_files: asyncio.Future[ChangedFiles | None] | None = None
        try:
            if self._interactive:
                self._output.write(CLEAR)
            render(self._output, pre_run_message(), self._interactive)
            self._output.write("\n")

            contexts = list(self._contexts())
            changed_files = asyncio.ensure_future(
                self._changed_files(config, [context.config for context in contexts])
            )
            changed_files.add_done_callback(_retrieve_exception)

            run.task = asyncio.ensure_future(
                self._engine(
                    contexts=contexts,
                    config=config,
                    token=run.token,
                    failed_tests_cache=self._failed_tests_cache,
                    changed_files=changed_files,
                    on_complete=on_complete,
                    output=self._output,
                    start_run=self.start_run,
                )
            )
        except Exception as e:
            # Nothing is in flight yet; the run ends here.
            if changed_files is not None:
                changed_files.cancel()
            self._fault(run, e)
            return None

        run.task.add_done_callback(lambda task: self._on_engine_done(run, task))
        return run.task

    async def wait_idle(self) -> None:
        """Wait for the run in flight (if any) to finish."""
        run = self._active
        if run is not None and run.task is not None and not run.task.done():
            await asyncio.wait([run.task])

    def _finish(self, run: _ActiveRun) -> None:
        self._is_running = False
        # The retired token stays with the finished run; interrupts aimed at
        # it cannot affect the next one.
        self._token = CancellationToken(is_watch_mode=True)
        if self._active is run:
            self._active = None

    def _on_engine_done(self, run: _ActiveRun, task: asyncio.Future[None]) -> None:
        if task.cancelled():
            if not run.completed:
                logger.info("Run %d was cancelled", run.run_id)
                run.completed = True
                self._finish(run)
            return
        error = task.exception()
        if error is not None:
            self._fault(run, error)
        elif not run.completed:
            self._fault(
                run,
                EngineFaultError(
                    "Test execution engine finished without reporting results",
                    run_id=run.run_id,
                ),
            )

    def _fault(self, run: _ActiveRun, error: BaseException) -> None:
        if isinstance(error, Exception):
            record_error(error)
        log_exception(logger, error, f"Run {run.run_id} failed")
        self._report(error)
        if run.completed:
            # The run already delivered results; the state belongs to whatever
            # started after it.
            return
        run.completed = True
        self._finish(run)
        if self._on_fault is not None:
            self._on_fault(error)

    def _report(self, error: BaseException) -> None:
        stream = self._error_output if self._error_output is not None else sys.stderr
        trace = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        render(stream, Text(trace, style="red"), self._interactive)
        stream.flush()
