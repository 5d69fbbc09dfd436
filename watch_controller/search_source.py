"""Search index over a project's test files."""

from __future__ import annotations

import fnmatch
import logging
import os
from pathlib import Path
from typing import Iterable

from .models import ProjectContext
from .pattern_prompts import compile_pattern

logger = logging.getLogger(__name__)


class SearchSource:
    """Maps a project context to the test files a run should include.

    Built from one immutable context and discarded when the context is
    rebuilt, so results never mix old and new file state.
    """

    def __init__(self, context: ProjectContext) -> None:
        self.context = context
        self._config = context.config
        self._tests = context.file_index.matching(self.is_test_path)

    def is_test_path(self, path: str) -> bool:
        name = os.path.basename(path)
        if not name.endswith(self._config.module_file_extensions):
            return False
        return any(fnmatch.fnmatch(name, glob) for glob in self._config.test_match)

    def all_tests(self) -> list[str]:
        return list(self._tests)

    def find_matching_tests(self, pattern: str) -> list[str]:
        """Return test files whose path matches ``pattern`` as a regex."""
        regex = compile_pattern(pattern)
        if regex is None:
            logger.debug("Ignoring invalid path pattern %r", pattern)
            return []
        return [path for path in self._tests if regex.search(path)]

    def find_related_tests(self, changed_files: Iterable[str]) -> list[str]:
        """Return tests affected by ``changed_files``.

        A changed test file is related to itself; a changed module relates
        to the tests named after it (``test_<name>.py`` or ``<name>_test.py``).
        """
        tests = set(self._tests)
        related: set[str] = set()
        stems: set[str] = set()
        for changed in changed_files:
            path = str(Path(changed))
            if path in tests:
                related.add(path)
            else:
                stems.add(Path(path).stem)
        for test_path in self._tests:
            stem = Path(test_path).stem
            if stem.startswith("test_") and stem[len("test_"):] in stems:
                related.add(test_path)
            elif stem.endswith("_test") and stem[: -len("_test")] in stems:
                related.add(test_path)
        return sorted(related)
