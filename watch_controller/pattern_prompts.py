"""Pattern prompts for the ``p`` and ``t`` commands.

Both prompts share the text-entry ``Prompt`` and differ only in where their
typeahead suggestions come from: test files from the search sources, or
test names from the last run's results.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, TextIO

from rich.text import Text

from .models import SearchSourceBinding, TestFileResult
from .prompt import Prompt
from .terminal import CLEAR
from .usage import render

logger = logging.getLogger(__name__)


def compile_pattern(pattern: str) -> re.Pattern[str] | None:
    """Compile a user pattern case-insensitively; None when it is invalid."""
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error:
        return None


class PatternPrompt:
    """Shared rendering and lifecycle for a typeahead pattern prompt."""

    entity_name = "pattern"

    def __init__(self, output: TextIO, prompt: Prompt, *, interactive: bool = True) -> None:
        self._output = output
        self._prompt = prompt
        self._interactive = interactive

    @property
    def prompt(self) -> Prompt:
        return self._prompt

    def run(
        self,
        on_success: Callable[[str], None],
        on_cancel: Callable[[str], None],
        header: Text | str = "",
    ) -> None:
        if self._interactive:
            self._output.write(CLEAR)
        if header:
            render(self._output, header, self._interactive)
            self._output.write("\n")
        self._prompt.enter(self._on_change, on_success, on_cancel)

    def _on_change(self, pattern: str, options: dict) -> None:
        matches = self.find_matches(pattern) if pattern else []
        self._prompt.set_typeahead_length(min(len(matches), options["max"]))
        offset = options["offset"]
        selected = matches[offset] if 0 <= offset < len(matches) else None
        self._prompt.set_typeahead_selection(selected)
        self.render_typeahead(pattern, matches[: options["max"]], offset)

    def render_typeahead(self, pattern: str, matches: list[str], offset: int) -> None:
        lines = [Text.assemble((f"{self.entity_name} › ", "dim"), pattern)]
        if pattern:
            if matches:
                lines.append(Text(f"Pattern matches {len(matches)} {self.entity_name}s", style="dim"))
            else:
                lines.append(Text(f"Pattern matches no {self.entity_name}s", style="dim"))
        for index, match in enumerate(matches):
            style = "bold" if index == offset else ""
            lines.append(Text.assemble((" › ", "dim"), (match, style)))
        render(self._output, Text("\n").join(lines) + Text("\n"), self._interactive)

    def find_matches(self, pattern: str) -> list[str]:
        raise NotImplementedError


class TestPathPatternPrompt(PatternPrompt):
    """Prompt for a regex matched against test file paths."""

    __test__ = False
    entity_name = "filename"

    def __init__(self, output: TextIO, prompt: Prompt, *, interactive: bool = True) -> None:
        super().__init__(output, prompt, interactive=interactive)
        self._search_sources: list[SearchSourceBinding] = []

    def update_search_sources(self, search_sources: list[SearchSourceBinding]) -> None:
        self._search_sources = search_sources

    def find_matches(self, pattern: str) -> list[str]:
        matches: list[str] = []
        for binding in self._search_sources:
            matches.extend(binding.search_source.find_matching_tests(pattern))
        return matches


class TestNamePatternPrompt(PatternPrompt):
    """Prompt for a regex matched against test names from the last run."""

    __test__ = False
    entity_name = "test"

    def __init__(self, output: TextIO, prompt: Prompt, *, interactive: bool = True) -> None:
        super().__init__(output, prompt, interactive=interactive)
        self._cached_test_results: list[TestFileResult] = []

    def update_cached_test_results(self, results: list[TestFileResult]) -> None:
        self._cached_test_results = list(results or [])

    def find_matches(self, pattern: str) -> list[str]:
        regex = compile_pattern(pattern)
        if regex is None:
            return []
        names: list[str] = []
        for file_result in self._cached_test_results:
            for case in file_result.test_results:
                if regex.search(case.full_name) and case.full_name not in names:
                    names.append(case.full_name)
        return names
