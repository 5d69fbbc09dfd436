"""Tests for the command line entry point."""

from __future__ import annotations

from unittest import mock

import pytest

from watch_controller.__main__ import _create_parser, _overrides, main
from watch_controller.exceptions import ConfigLoadError


class TestArgumentParser:
    """Test argument parser configuration."""

    def test_help_exits(self) -> None:
        with pytest.raises(SystemExit):
            _create_parser().parse_args(["--help"])

    def test_defaults(self) -> None:
        args = _create_parser().parse_args([])
        assert args.watch_all is False
        assert args.root is None
        assert args.root_dir == "."
        assert args.plugin is None
        assert args.log_level == "INFO"
        assert args.test_command == []

    def test_repeatable_options(self) -> None:
        args = _create_parser().parse_args(
            ["--root", "api", "--root", "web", "--plugin", "a.py", "--plugin", "pkg.mod"]
        )
        assert args.root == ["api", "web"]
        assert args.plugin == ["a.py", "pkg.mod"]

    def test_invalid_log_level(self) -> None:
        with pytest.raises(SystemExit):
            _create_parser().parse_args(["--log-level", "LOUD"])


class TestOverrides:
    """Command line flags become settings overrides."""

    def test_no_flags(self) -> None:
        assert _overrides(_create_parser().parse_args([])) == {}

    def test_run_flags(self) -> None:
        args = _create_parser().parse_args(
            ["--watch-all", "--only-failures", "--no-scm", "--plugin", "a.py"]
        )
        assert _overrides(args) == {
            "run": {
                "watch_all": True,
                "only_failures": True,
                "no_scm": True,
                "watch_plugins": ["a.py"],
            }
        }

    def test_test_command_after_separator(self) -> None:
        args = _create_parser().parse_args(["--watch-all", "--", "pytest", "-x"])
        assert _overrides(args)["run"]["test_command"] == ["pytest", "-x"]

    def test_roots_become_projects(self) -> None:
        args = _create_parser().parse_args(["--root", "api", "--root", "web"])
        assert _overrides(args)["projects"] == [{"root_dir": "api"}, {"root_dir": "web"}]


class TestMain:
    """Test the main entry point."""

    def test_runs_session(self) -> None:
        run_watch = mock.AsyncMock(return_value=0)
        with mock.patch("watch_controller.__main__._setup_logging"), mock.patch(
            "watch_controller.__main__.run_watch", run_watch
        ):
            assert main(["--watch-all"]) == 0
        assert run_watch.call_args.args[0].watch_all is True

    def test_controller_error_exits_with_1(self, capsys) -> None:
        run_watch = mock.AsyncMock(side_effect=ConfigLoadError("Config file not found"))
        with mock.patch("watch_controller.__main__._setup_logging"), mock.patch(
            "watch_controller.__main__.run_watch", run_watch
        ):
            assert main([]) == 1
        assert "Error: Config file not found" in capsys.readouterr().err

    def test_keyboard_interrupt_exits_cleanly(self) -> None:
        run_watch = mock.AsyncMock(side_effect=KeyboardInterrupt)
        with mock.patch("watch_controller.__main__._setup_logging"), mock.patch(
            "watch_controller.__main__.run_watch", run_watch
        ):
            assert main([]) == 0

    def test_setup_logging_flags(self) -> None:
        with mock.patch("watch_controller.logging_config.setup_logging") as setup, mock.patch(
            "watch_controller.__main__.run_watch", mock.AsyncMock(return_value=0)
        ):
            main(["--debug"])
            setup.assert_called_once_with(level="DEBUG", log_to_console=True, log_to_file=True)

            setup.reset_mock()
            main(["--log-level", "WARNING", "--no-log-file"])
            setup.assert_called_once_with(
                level="WARNING", log_to_console=False, log_to_file=False
            )
