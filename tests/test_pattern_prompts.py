"""Tests for the filename and test-name pattern prompts."""

import io
from unittest.mock import Mock

import pytest

from watch_controller.keys import KEYS, encode_key
from watch_controller.models import (
    SearchSourceBinding,
    TestCaseResult,
    TestFileResult,
)
from watch_controller.pattern_prompts import (
    TestNamePatternPrompt,
    TestPathPatternPrompt,
    compile_pattern,
)
from watch_controller.prompt import Prompt
from watch_controller.search_source import SearchSource


def type_text(prompt: Prompt, text: str) -> None:
    for char in text:
        prompt.put(encode_key(char))


class TestCompilePattern:
    def test_case_insensitive(self):
        assert compile_pattern("API").search("test_api.py")

    def test_invalid_pattern(self):
        assert compile_pattern("(") is None


class TestPathPrompt:
    @pytest.fixture
    def output(self):
        return io.StringIO()

    @pytest.fixture
    def path_prompt(self, output, project_context):
        path_prompt = TestPathPatternPrompt(output, Prompt(), interactive=False)
        path_prompt.update_search_sources(
            [SearchSourceBinding(project_context, SearchSource(project_context))]
        )
        return path_prompt

    def test_run_renders_header_and_enters(self, path_prompt, output):
        path_prompt.run(Mock(), Mock(), header="Active Filters: x")
        assert path_prompt.prompt.is_entering()
        assert "Active Filters: x" in output.getvalue()
        assert "filename › " in output.getvalue()

    def test_typeahead_lists_matching_tests(self, path_prompt, output):
        path_prompt.run(Mock(), Mock())
        type_text(path_prompt.prompt, "util")
        text = output.getvalue()
        assert "Pattern matches 1 filenames" in text
        assert "utils_test.py" in text

    def test_no_matches(self, path_prompt, output):
        path_prompt.run(Mock(), Mock())
        type_text(path_prompt.prompt, "zzz")
        assert "Pattern matches no filenames" in output.getvalue()

    def test_selected_match_is_submitted(self, path_prompt, tmp_path):
        on_success = Mock()
        path_prompt.run(on_success, Mock())
        type_text(path_prompt.prompt, "test")
        path_prompt.prompt.put(KEYS.ARROW_DOWN)
        path_prompt.prompt.put(KEYS.ENTER)
        on_success.assert_called_once_with(str(tmp_path / "test_app.py"))

    def test_find_matches_uses_all_sources(self, project_context):
        path_prompt = TestPathPatternPrompt(io.StringIO(), Prompt(), interactive=False)
        source = SearchSource(project_context)
        path_prompt.update_search_sources(
            [SearchSourceBinding(project_context, source), SearchSourceBinding(project_context, source)]
        )
        assert len(path_prompt.find_matches("app")) == 2


class TestNamePrompt:
    def test_find_matches_from_cached_results(self):
        name_prompt = TestNamePatternPrompt(io.StringIO(), Prompt(), interactive=False)
        name_prompt.update_cached_test_results(
            [
                TestFileResult(
                    "/p/test_a.py",
                    [
                        TestCaseResult("test_login", "TestAuth::test_login"),
                        TestCaseResult("test_logout", "TestAuth::test_logout"),
                    ],
                ),
                TestFileResult("/p/test_b.py", [TestCaseResult("test_login", "TestAuth::test_login")]),
            ]
        )
        assert name_prompt.find_matches("log") == [
            "TestAuth::test_login",
            "TestAuth::test_logout",
        ]
        assert name_prompt.find_matches("LOGOUT") == ["TestAuth::test_logout"]
        assert name_prompt.find_matches("[") == []

    def test_no_cached_results(self):
        name_prompt = TestNamePatternPrompt(io.StringIO(), Prompt(), interactive=False)
        name_prompt.update_cached_test_results(None)
        assert name_prompt.find_matches("x") == []
