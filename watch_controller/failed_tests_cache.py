"""Remembers which tests failed in the last run, for ``only_failures`` runs."""

from __future__ import annotations

from .models import TestFileResult


class FailedTestsCache:
    def __init__(self) -> None:
        self._failed: dict[str, list[str]] = {}

    @property
    def has_failures(self) -> bool:
        return bool(self._failed)

    def set_test_results(self, results: list[TestFileResult]) -> None:
        failed: dict[str, list[str]] = {}
        for file_result in results or []:
            names = [case.full_name for case in file_result.failed_tests]
            if names:
                failed[file_result.test_file_path] = names
        self._failed = failed

    def filter_tests(self, paths: list[str]) -> list[str]:
        return [path for path in paths if path in self._failed]

    def failed_paths(self) -> list[str]:
        return list(self._failed)

    def failed_node_ids(self, paths: list[str] | None = None) -> list[str]:
        """Return pytest node ids (``path::name``) of the cached failures."""
        selected = self._failed if paths is None else {
            p: self._failed[p] for p in paths if p in self._failed
        }
        return [f"{path}::{name}" for path, names in selected.items() for name in names]
