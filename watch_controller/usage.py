"""Watch menu rendering.

Builds the usage menu, active filter summary and toggle hint as rich
renderables. ``render`` writes them to the session's output stream, in
color only when the stream is interactive.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, TextIO

from rich.console import Console, RenderableType
from rich.text import Text

from .models import RunConfiguration, WatchMode

if TYPE_CHECKING:
    from .plugins import PluginDescriptor

ARROW = " › "


def _press(key: str, action: str) -> Text:
    return Text.assemble((f"{ARROW}Press ", "dim"), key, (f" to {action}.", "dim"))


def active_filters(config: RunConfiguration) -> Text:
    """Summarize the active patterns, or an empty text when none is set."""
    if not config.has_filters:
        return Text()
    filters: list[Text] = []
    if config.test_path_pattern:
        filters.append(
            Text.assemble(("filename ", "dim"), (f"/{config.test_path_pattern}/", "yellow"))
        )
    if config.test_name_pattern:
        filters.append(
            Text.assemble(("test name ", "dim"), (f"/{config.test_name_pattern}/", "yellow"))
        )
    return Text.assemble("\n", ("Active Filters: ", "bold"), Text(", ").join(filters))


def usage(
    config: RunConfiguration,
    plugins: Iterable[PluginDescriptor] = (),
    snapshot_failure: bool = False,
) -> Text:
    """Build the full watch usage menu for the current configuration."""
    lines: list[Text] = []

    if config.has_filters:
        lines.append(active_filters(config))
        lines.append(_press("c", "clear filters"))

    lines.append(Text.assemble("\n", ("Watch Usage", "bold")))

    if config.mode == WatchMode.WATCH:
        lines.append(_press("a", "run all tests"))

    if config.only_failures:
        lines.append(_press("f", "run all tests"))
    else:
        lines.append(_press("f", "run only failed tests"))

    if (config.mode == WatchMode.WATCH_ALL or config.has_filters) and not config.no_scm:
        lines.append(_press("o", "only run tests related to changed files"))

    if snapshot_failure:
        lines.append(_press("u", "update failing snapshots"))
        lines.append(_press("i", "update failing snapshots interactively"))

    lines.append(_press("p", "filter by a filename regex pattern"))
    lines.append(_press("t", "filter by a test name regex pattern"))

    for plugin in plugins:
        lines.append(_press(plugin.key_label, plugin.prompt))

    lines.append(_press("q", "quit watch mode"))
    lines.append(_press("Enter", "trigger a test run"))

    return Text("\n").join(lines) + Text("\n")


def toggle_usage_prompt() -> Text:
    """The one-line hint shown instead of the full menu after the first run."""
    return Text.assemble(
        "\n",
        ("Watch Usage: ", "bold"),
        ("Press ", "dim"),
        "w",
        (" to show more.", "dim"),
    )


def pre_run_message() -> Text:
    return Text("Determining test suites to run...", style="bold")


def render(output: TextIO, renderable: RenderableType, interactive: bool) -> None:
    """Print a renderable to ``output`` without a trailing newline."""
    console = Console(
        file=output,
        force_terminal=interactive,
        no_color=not interactive,
        highlight=False,
        soft_wrap=True,
        emoji=False,
    )
    console.print(renderable, end="")
