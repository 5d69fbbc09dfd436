"""Interactive watch session.

``WatchSession`` ties the pieces together: it routes keystrokes to whoever
owns the keyboard, applies built-in commands to the run configuration,
starts runs through the ``RunCoordinator`` and renders the menu when a run
completes. Filesystem changes arrive through one ``ChangeReactor`` per
project.

Keystroke priority:
1. Quit codes (Ctrl-C, Ctrl-D)
2. Active plugin
3. Pattern prompt
4. Snapshot review
5. Interrupt of the run in flight (abort-eligible keys only)
6. Plugin hotkeys
7. Built-in commands
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import sys
from typing import AsyncIterable, Callable, TextIO

from rich.console import RenderableType

from .changed_files import get_changed_files
from .changes import ChangeReactor, watch_project
from .exceptions import record_error
from .failed_tests_cache import FailedTestsCache
from .keys import ABORT_ELIGIBLE_KEYS, KEYS, QUIT_KEYS, key_code
from .logging_config import log_exception
from .modality import ModalityKind, ModalityState, PluginActive, PromptEntering, StepReviewActive
from .models import (
    ChangeBatch,
    ProjectContext,
    RunConfiguration,
    RunResultSummary,
    SearchSourceBinding,
    UpdateSnapshotPolicy,
    UsageDisplayState,
    WatchMode,
    create_context,
    update_run_config,
)
from .pattern_prompts import TestNamePatternPrompt, TestPathPatternPrompt
from .plugins import PluginDescriptor, WatchPluginRegistry
from .prompt import Prompt
from .run_coordinator import ChangedFilesFn, ExecutionEngine, RunCoordinator
from .search_source import SearchSource
from .snapshot_review import SnapshotInteractiveMode
from .terminal import (
    CLEAR_SCREEN,
    CURSOR_HIDE,
    CURSOR_SHOW,
    CURSOR_UP,
    ERASE_DOWN,
    interactive_terminal,
    read_keys,
)
from .terminal import is_interactive as stream_is_interactive
from .usage import active_filters, render, toggle_usage_prompt, usage

logger = logging.getLogger(__name__)


def replace_path_sep_for_regex(pattern: str) -> str:
    """Make a typed path pattern usable as a regex on Windows paths."""
    if os.sep == "\\":
        return re.sub(r"(?<!\\)\\(?![\[\]().*+?^$|{}\\])", r"\\\\", pattern)
    return pattern


class WatchSession:
    """One interactive watch session over a set of projects."""

    def __init__(
        self,
        initial_config: RunConfiguration,
        contexts: list[ProjectContext],
        output: TextIO,
        *,
        engine: ExecutionEngine | None = None,
        stdin: TextIO | None = None,
        stdin_keys: AsyncIterable[str] | None = None,
        change_sources: list[AsyncIterable[ChangeBatch]] | None = None,
        plugin_registry: WatchPluginRegistry | None = None,
        changed_files: ChangedFilesFn = get_changed_files,
        is_interactive: bool | None = None,
        error_output: TextIO | None = None,
        exit_process: Callable[[int], object] = sys.exit,
    ) -> None:
        self._config = update_run_config(initial_config, pass_with_no_tests=True)
        self._contexts = list(contexts)
        self._output = output
        self._stdin = stdin if stdin is not None else sys.stdin
        self._stdin_keys = stdin_keys
        self._change_sources = change_sources
        self._interactive = (
            is_interactive if is_interactive is not None else stream_is_interactive(output)
        )
        self._exit_process = exit_process

        # Plugin resolution errors are fatal to session start.
        self._plugins = plugin_registry or WatchPluginRegistry(self._config.root_dir)
        for identifier in self._config.watch_plugins:
            self._plugins.load_plugin_path(identifier)

        if engine is None:
            from .engine import PytestEngine

            engine = PytestEngine()

        self._failed_tests_cache = FailedTestsCache()
        self._prompt = Prompt()
        self._path_prompt = TestPathPatternPrompt(output, self._prompt, interactive=self._interactive)
        self._name_prompt = TestNamePatternPrompt(output, self._prompt, interactive=self._interactive)
        self._reviewer = SnapshotInteractiveMode(output, interactive=self._interactive)
        self._modality = ModalityState()
        self._usage_state = UsageDisplayState()

        self._has_snapshot_failure = False
        self._failed_snapshot_test_paths: list[str] = []
        self._path_pattern_before_review = ""
        self._quitting = False
        self._stopped = asyncio.Event()
        self._reactors: list[ChangeReactor] = []

        self._search_sources = [
            SearchSourceBinding(context, SearchSource(context)) for context in self._contexts
        ]
        self._path_prompt.update_search_sources(self._search_sources)

        self._coordinator = RunCoordinator(
            engine,
            lambda: self._contexts,
            self._failed_tests_cache,
            output,
            changed_files=changed_files,
            error_output=error_output,
            is_interactive=self._interactive,
            on_complete=self._on_run_complete,
            on_fault=self._on_run_fault,
        )

        self._commands: dict[str, Callable[[], None]] = {
            KEYS.Q: self.quit,
            KEYS.ENTER: self._run_again,
            KEYS.A: self._run_all,
            KEYS.C: self._clear_filters,
            KEYS.F: self._toggle_only_failures,
            KEYS.O: self._run_changed,
            KEYS.U: self._update_snapshots,
            KEYS.I: self._review_snapshots,
            KEYS.P: self._enter_path_pattern,
            KEYS.T: self._enter_name_pattern,
            KEYS.W: self._show_full_usage,
            KEYS.QUESTION_MARK: lambda: None,
        }

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def config(self) -> RunConfiguration:
        return self._config

    @property
    def modality(self) -> ModalityState:
        return self._modality

    @property
    def coordinator(self) -> RunCoordinator:
        return self._coordinator

    @property
    def is_running(self) -> bool:
        return self._coordinator.is_running

    @property
    def usage_state(self) -> UsageDisplayState:
        return self._usage_state

    @property
    def has_snapshot_failure(self) -> bool:
        return self._has_snapshot_failure

    @property
    def failed_snapshot_test_paths(self) -> list[str]:
        return list(self._failed_snapshot_test_paths)

    @property
    def search_sources(self) -> list[SearchSourceBinding]:
        return self._search_sources

    @property
    def contexts(self) -> list[ProjectContext]:
        return self._contexts

    @property
    def plugins(self) -> WatchPluginRegistry:
        return self._plugins

    @property
    def prompt(self) -> Prompt:
        return self._prompt

    @property
    def reviewer(self) -> SnapshotInteractiveMode:
        return self._reviewer

    @property
    def failed_tests_cache(self) -> FailedTestsCache:
        return self._failed_tests_cache

    def start_run(self, config: RunConfiguration | None = None) -> asyncio.Future[None] | None:
        """Start a run with ``config`` (default: the current configuration)."""
        return self._coordinator.start_run(config if config is not None else self._config)

    # -------------------------------------------------------------------------
    # Keystroke routing
    # -------------------------------------------------------------------------

    def on_keypress(self, key: str) -> None:
        """Route one hex-encoded keystroke."""
        if self._quitting:
            return
        if key in QUIT_KEYS:
            self.quit()
            return

        current = self._modality.current
        if isinstance(current, PluginActive):
            try:
                current.plugin.put(key)
            except Exception as e:
                record_error(e)
                log_exception(logger, e, f"Watch plugin {current.plugin.source} failed on key {key}")
                self._modality.reset()
                self._redraw_usage()
            return
        if isinstance(current, PromptEntering):
            current.prompt.put(key)
            return
        if isinstance(current, StepReviewActive):
            current.reviewer.put(key)
            return

        if self._coordinator.is_running and key in ABORT_ELIGIBLE_KEYS:
            self._coordinator.interrupt()
            return

        plugin = self._plugins.get_plugin_by_pressed_key(key_code(key))
        if plugin is not None:
            self._activate_plugin(plugin)
            return

        command = self._commands.get(key)
        if command is not None:
            command()

    def quit(self) -> None:
        self._quitting = True
        self._stopped.set()
        self._output.write("\n")
        self._output.flush()
        self._exit_process(0)

    # -------------------------------------------------------------------------
    # Built-in commands
    # -------------------------------------------------------------------------

    def _update_config(self, **patch: object) -> None:
        self._config = update_run_config(self._config, **patch)

    def _run_again(self) -> None:
        self.start_run()

    def _run_all(self) -> None:
        self._update_config(mode=WatchMode.WATCH_ALL, test_name_pattern="", test_path_pattern="")
        self.start_run()

    def _clear_filters(self) -> None:
        self._update_config(mode=WatchMode.WATCH, test_name_pattern="", test_path_pattern="")
        self.start_run()

    def _toggle_only_failures(self) -> None:
        self._update_config(only_failures=not self._config.only_failures)
        self.start_run()

    def _run_changed(self) -> None:
        self._update_config(mode=WatchMode.WATCH, test_name_pattern="", test_path_pattern="")
        self.start_run()

    def _update_snapshots(self) -> None:
        # Only the run started here updates snapshots.
        self._update_config(update_snapshot=UpdateSnapshotPolicy.ALL)
        self.start_run()
        self._update_config(update_snapshot=UpdateSnapshotPolicy.NONE)

    def _review_snapshots(self) -> None:
        if not self._has_snapshot_failure or not self._failed_snapshot_test_paths:
            return
        self._path_pattern_before_review = self._config.test_path_pattern
        self._modality.enter_review(self._reviewer)
        self._reviewer.run(
            self._failed_snapshot_test_paths,
            self._on_snapshot_decision,
            on_exit=self._on_review_exit,
        )

    def _on_snapshot_decision(self, path: str, should_update_snapshot: bool) -> None:
        self._update_config(
            mode=WatchMode.WATCH,
            test_name_pattern="",
            test_path_pattern=re.escape(path),
            update_snapshot=(
                UpdateSnapshotPolicy.ALL if should_update_snapshot else UpdateSnapshotPolicy.NONE
            ),
        )
        self.start_run()
        self._update_config(update_snapshot=UpdateSnapshotPolicy.NONE)

    def _on_review_exit(self) -> None:
        self._modality.reset_if(ModalityKind.STEP_REVIEW_ACTIVE)
        self._update_config(test_path_pattern=self._path_pattern_before_review)
        if not self._coordinator.is_running:
            self._redraw_usage()

    def _enter_path_pattern(self) -> None:
        self._modality.enter_prompt(self._prompt)
        self._path_prompt.run(
            self._on_path_pattern,
            self._on_pattern_cancel,
            header=active_filters(self._config),
        )

    def _on_path_pattern(self, value: str) -> None:
        self._modality.reset_if(ModalityKind.PROMPT_ENTERING)
        self._update_config(
            mode=WatchMode.WATCH,
            test_name_pattern="",
            test_path_pattern=replace_path_sep_for_regex(value),
        )
        self.start_run()

    def _enter_name_pattern(self) -> None:
        self._modality.enter_prompt(self._prompt)
        self._name_prompt.run(
            self._on_name_pattern,
            self._on_pattern_cancel,
            header=active_filters(self._config),
        )

    def _on_name_pattern(self, value: str) -> None:
        self._modality.reset_if(ModalityKind.PROMPT_ENTERING)
        self._update_config(mode=WatchMode.WATCH, test_name_pattern=value)
        self.start_run()

    def _on_pattern_cancel(self, _value: str) -> None:
        self._modality.reset_if(ModalityKind.PROMPT_ENTERING)
        self._redraw_usage()

    def _show_full_usage(self) -> None:
        state = self._usage_state
        if state.should_show_full_usage or state.is_full_usage_currently_shown:
            return
        self._output.write(CURSOR_UP)
        self._output.write(ERASE_DOWN)
        self._write(self._usage())
        state.is_full_usage_currently_shown = True

    # -------------------------------------------------------------------------
    # Plugins
    # -------------------------------------------------------------------------

    def _activate_plugin(self, plugin: PluginDescriptor) -> None:
        self._modality.activate_plugin(plugin)

        def on_done() -> None:
            current = self._modality.current
            if isinstance(current, PluginActive) and current.plugin is plugin:
                self._modality.reset()
                self._redraw_usage()

        try:
            plugin.activate(self._config, on_done)
        except Exception as e:
            record_error(e)
            log_exception(logger, e, f"Watch plugin {plugin.source} failed to activate")
            on_done()

    # -------------------------------------------------------------------------
    # Run completion
    # -------------------------------------------------------------------------

    def _on_run_complete(self, results: RunResultSummary) -> None:
        self._has_snapshot_failure = results.snapshot_failure
        self._failed_snapshot_test_paths = list(results.failed_snapshot_test_paths)
        self._name_prompt.update_cached_test_results(results.test_results)
        self._failed_tests_cache.set_test_results(results.test_results)

        if self._reviewer.is_active():
            self._reviewer.update_with_results(results)
            return
        self._render_after_run()

    def _on_run_fault(self, error: BaseException) -> None:
        if self._reviewer.is_active():
            return
        self._render_after_run()

    def _render_after_run(self) -> None:
        if not self._interactive:
            self._output.write("\n")
            self._output.flush()
            return
        state = self._usage_state
        if state.should_show_full_usage:
            self._write(self._usage())
            state.should_show_full_usage = False
            state.is_full_usage_currently_shown = True
        else:
            self._write(toggle_usage_prompt())
            state.is_full_usage_currently_shown = False

    def _usage(self) -> RenderableType:
        return usage(
            self._config,
            self._plugins.get_plugins_in_order(),
            snapshot_failure=self._has_snapshot_failure,
        )

    def _redraw_usage(self) -> None:
        if self._interactive:
            self._output.write(CURSOR_HIDE)
            self._output.write(CLEAR_SCREEN)
        self._write(self._usage())
        if self._interactive:
            self._output.write(CURSOR_SHOW)
        self._usage_state.is_full_usage_currently_shown = True

    def _write(self, renderable: RenderableType) -> None:
        render(self._output, renderable, self._interactive)
        self._output.flush()

    # -------------------------------------------------------------------------
    # Filesystem changes
    # -------------------------------------------------------------------------

    def on_project_change(self, index: int, batch: ChangeBatch) -> None:
        """Rebuild project ``index`` from a change batch and start a run."""
        context = create_context(self._contexts[index].config, batch.file_index, batch.module_map)
        contexts = list(self._contexts)
        contexts[index] = context
        self._contexts = contexts

        # A pattern typed against the old file set is stale.
        if self._prompt.is_entering():
            self._prompt.abort()
            self._modality.reset_if(ModalityKind.PROMPT_ENTERING)

        search_sources = list(self._search_sources)
        search_sources[index] = SearchSourceBinding(context, SearchSource(context))
        self._search_sources = search_sources
        self._path_prompt.update_search_sources(search_sources)

        self.start_run()

    def _build_reactors(self) -> list[ChangeReactor]:
        if self._change_sources is not None:
            sources = list(self._change_sources)
        else:
            sources = [watch_project(context.config) for context in self._contexts]
        return [
            ChangeReactor(
                index,
                self._contexts[index].config,
                source,
                self.on_project_change,
            )
            for index, source in enumerate(sources)
        ]

    # -------------------------------------------------------------------------
    # Main loop
    # -------------------------------------------------------------------------

    async def run(self) -> None:
        """Run the session until quit or until the key stream ends."""
        with interactive_terminal(
            self._stdin, self._output, prompt_visible=self._prompt.is_entering
        ) as terminal:
            self._reactors = self._build_reactors()
            for reactor in self._reactors:
                reactor.start()
            try:
                self.start_run()
                keys = self._stdin_keys
                if keys is None and terminal.is_tty:
                    keys = read_keys(self._stdin)
                if keys is None:
                    logger.info("stdin is not a tty, watching without keyboard input")
                    await self._stopped.wait()
                else:
                    async for key in keys:
                        self.on_keypress(key)
                        if self._quitting:
                            break
            finally:
                for reactor in self._reactors:
                    await reactor.stop()
                self._reactors = []
                self._coordinator.interrupt()
                await self._coordinator.wait_idle()
