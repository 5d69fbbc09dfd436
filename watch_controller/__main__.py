"""Entry point for python -m watch_controller.

Usage:
    # Watch tests related to files changed since the last commit
    python -m watch_controller

    # Watch every test
    python -m watch_controller --watch-all

    # Several projects, a plugin and a custom test command
    python -m watch_controller --root api --root web --plugin plugins/coverage.py -- pytest -x
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Any


def _setup_logging(args: argparse.Namespace) -> None:
    """Configure logging based on command-line arguments."""
    from watch_controller.logging_config import setup_logging

    if args.debug:
        setup_logging(
            level="DEBUG",
            log_to_console=True,
            log_to_file=True,
        )
    else:
        setup_logging(
            level=args.log_level,
            log_to_console=False,
            log_to_file=not args.no_log_file,
        )


def _overrides(args: argparse.Namespace) -> dict[str, Any]:
    """Settings given on the command line, in settings-file shape."""
    run: dict[str, Any] = {}
    if args.watch_all:
        run["watch_all"] = True
    if args.only_failures:
        run["only_failures"] = True
    if args.no_scm:
        run["no_scm"] = True
    if args.plugin:
        run["watch_plugins"] = list(args.plugin)
    command = [part for part in args.test_command if part != "--"]
    if command:
        run["test_command"] = command

    overrides: dict[str, Any] = {}
    if run:
        overrides["run"] = run
    if args.root:
        overrides["projects"] = [{"root_dir": root} for root in args.root]
    return overrides


async def run_watch(args: argparse.Namespace) -> int:
    """Load settings, index projects and run a watch session."""
    from watch_controller.changes import crawl_project
    from watch_controller.config import load_settings
    from watch_controller.models import create_context
    from watch_controller.watch import WatchSession

    settings = load_settings(args.root_dir, config_path=args.config, overrides=_overrides(args))
    contexts = []
    for project in settings.projects:
        file_index, module_map = await asyncio.to_thread(crawl_project, project)
        contexts.append(create_context(project, file_index, module_map))

    session = WatchSession(settings.run, contexts, sys.stdout, error_output=sys.stderr)
    await session.run()
    return 0


# =============================================================================
# Argument Parser Setup
# =============================================================================


def _create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="watch-controller",
        description="Re-run tests on file changes with an interactive menu",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Only tests related to uncommitted changes
  python -m watch_controller

  # Every test, stopping at the first failure
  python -m watch_controller --watch-all -- python -m pytest -x

Keys:
  a run all, f failed only, o changed only, p/t filter, c clear filters,
  u update snapshots, i review snapshots, w menu, Enter re-run, q quit
""",
    )

    parser.add_argument(
        "--watch-all",
        action="store_true",
        help="Run every test instead of only tests related to changed files",
    )
    parser.add_argument(
        "--root",
        action="append",
        metavar="DIR",
        help="Project directory to watch (repeatable, default: current directory)",
    )
    parser.add_argument(
        "--root-dir",
        default=".",
        help="Directory settings and relative paths are resolved from (default: .)",
    )
    parser.add_argument(
        "--plugin",
        action="append",
        metavar="ID",
        help="Watch plugin module, module:attribute or file path (repeatable)",
    )
    parser.add_argument(
        "--only-failures",
        action="store_true",
        help="Start with only previously failed tests",
    )
    parser.add_argument(
        "--no-scm",
        action="store_true",
        help="Do not ask git for changed files",
    )
    parser.add_argument(
        "--config",
        help="Settings file to use instead of .watch-controller.json",
    )

    # Logging
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging to console",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Set log level (default: INFO)",
    )
    parser.add_argument(
        "--no-log-file",
        action="store_true",
        help="Disable logging to file",
    )

    parser.add_argument(
        "test_command",
        nargs=argparse.REMAINDER,
        help="Test command to run after --, e.g. -- python -m pytest -x",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the watch controller."""
    from watch_controller.exceptions import WatchControllerError

    parser = _create_parser()
    args = parser.parse_args(argv)

    # Initialize logging
    _setup_logging(args)

    try:
        return asyncio.run(run_watch(args))
    except WatchControllerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
