"""Step-through review of failing snapshot test files."""

from __future__ import annotations

import logging
from typing import Callable, TextIO

from rich.text import Text

from .keys import KEYS
from .models import RunResultSummary
from .usage import render

logger = logging.getLogger(__name__)

DecisionCallback = Callable[[str, bool], None]


class SnapshotInteractiveMode:
    """Walks failing snapshot files one at a time.

    Keys while active:
    - ``u``: update the current file's snapshots (decision yes)
    - ``Enter``: re-run the current file without updating (decision no)
    - ``s``: skip the current file
    - ``q`` / ``Escape``: leave review
    """

    def __init__(self, output: TextIO, *, interactive: bool = True) -> None:
        self._output = output
        self._interactive = interactive
        self._is_active = False
        self._test_file_paths: list[str] = []
        self._index = 0
        self._on_decision: DecisionCallback | None = None
        self._on_exit: Callable[[], None] | None = None
        self._last_results: RunResultSummary | None = None

    def is_active(self) -> bool:
        return self._is_active

    @property
    def current_path(self) -> str | None:
        if self._is_active and self._index < len(self._test_file_paths):
            return self._test_file_paths[self._index]
        return None

    @property
    def position(self) -> int:
        return self._index

    @property
    def remaining(self) -> int:
        return max(len(self._test_file_paths) - self._index, 0)

    def run(
        self,
        failed_snapshot_test_paths: list[str],
        on_decision: DecisionCallback,
        on_exit: Callable[[], None] | None = None,
    ) -> None:
        if not failed_snapshot_test_paths:
            return
        self._test_file_paths = list(failed_snapshot_test_paths)
        self._index = 0
        self._on_decision = on_decision
        self._on_exit = on_exit
        self._last_results = None
        self._is_active = True
        logger.debug("Snapshot review started with %d files", len(self._test_file_paths))
        self._draw_overlay()

    def put(self, key: str) -> None:
        if not self._is_active:
            return
        if key == KEYS.U:
            self._decide(True)
        elif key == KEYS.ENTER:
            self._decide(False)
        elif key == KEYS.S:
            self._advance()
        elif key in (KEYS.Q, KEYS.ESCAPE):
            self.abort()

    def update_with_results(self, results: RunResultSummary) -> None:
        """Refresh the overlay with a finished run; keeps the cursor."""
        self._last_results = results
        if self._is_active:
            self._draw_overlay()

    def abort(self) -> None:
        was_active = self._is_active
        self._is_active = False
        self._test_file_paths = []
        self._index = 0
        self._on_decision = None
        on_exit, self._on_exit = self._on_exit, None
        if was_active and on_exit is not None:
            on_exit()

    def _decide(self, should_update_snapshot: bool) -> None:
        path = self.current_path
        if path is None or self._on_decision is None:
            return
        self._on_decision(path, should_update_snapshot)
        self._advance()

    def _advance(self) -> None:
        self._index += 1
        if self._index >= len(self._test_file_paths):
            logger.debug("Snapshot review exhausted")
            self.abort()
        else:
            self._draw_overlay()

    def _draw_overlay(self) -> None:
        path = self.current_path
        if path is None:
            return
        lines = [
            Text.assemble("\n", ("Interactive Snapshot Progress", "bold")),
            Text.assemble(
                (" › ", "dim"),
                (f"{self.remaining} snapshot file{'s' if self.remaining != 1 else ''} remaining", "bold red"),
            ),
            Text.assemble((" › Reviewing ", "dim"), (path, "yellow")),
        ]
        if self._last_results is not None:
            if self._last_results.snapshot_failure:
                lines.append(Text(" › Last run still has failing snapshots.", style="dim"))
            else:
                lines.append(Text(" › Last run passed.", style="green"))
        lines += [
            Text("\nInteractive Snapshot Mode", style="bold"),
            Text.assemble((" › Press ", "dim"), "u", (" to update failing snapshots for this test.", "dim")),
            Text.assemble((" › Press ", "dim"), "s", (" to skip the current test.", "dim")),
            Text.assemble((" › Press ", "dim"), "q", (" to quit Interactive Snapshot Mode.", "dim")),
            Text.assemble((" › Press ", "dim"), "Enter", (" to trigger a test run.", "dim")),
        ]
        render(self._output, Text("\n").join(lines) + Text("\n"), self._interactive)
