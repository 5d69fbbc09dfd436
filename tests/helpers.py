"""Test doubles and helpers shared by the watch controller tests."""

from __future__ import annotations

import asyncio
from typing import Any, Callable

from watch_controller.models import (
    RunConfiguration,
    RunResultSummary,
    TestCaseResult,
    TestFileResult,
    TestStatus,
)


class FakeEngine:
    """Execution engine double that completes only when told to.

    Interrupting a run's token completes it with an interrupted summary,
    the way a cooperative engine would.
    """

    def __init__(self, *, complete_on_interrupt: bool = True) -> None:
        self.calls: list[dict[str, Any]] = []
        self.complete_on_interrupt = complete_on_interrupt
        self._finished: list[asyncio.Future[None]] = []

    def __call__(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        finished = asyncio.get_running_loop().create_future()
        self._finished.append(finished)
        return self._run(kwargs, finished)

    async def _run(self, kwargs: dict[str, Any], finished: asyncio.Future[None]) -> None:
        token = kwargs["token"]

        def on_interrupt(_token: Any) -> None:
            if self.complete_on_interrupt and not finished.done():
                kwargs["on_complete"](RunResultSummary(interrupted=True))
                finished.set_result(None)

        token.add_listener(on_interrupt)
        try:
            await finished
        finally:
            token.remove_listener(on_interrupt)

    @property
    def call_count(self) -> int:
        return len(self.calls)

    @property
    def last_config(self) -> RunConfiguration:
        return self.calls[-1]["config"]

    def complete(self, summary: RunResultSummary | None = None, index: int = -1) -> None:
        """Report completion of a run (the latest by default)."""
        self.calls[index]["on_complete"](summary or RunResultSummary())
        finished = self._finished[index]
        if not finished.done():
            finished.set_result(None)

    def finish_silently(self, index: int = -1) -> None:
        """End a run without reporting results."""
        finished = self._finished[index]
        if not finished.done():
            finished.set_result(None)

    def fail(self, error: BaseException, index: int = -1) -> None:
        finished = self._finished[index]
        if not finished.done():
            finished.set_exception(error)


class FakePlugin:
    """Minimal watch plugin recording what it receives."""

    def __init__(self, key: str = "s", prompt: str = "do something special") -> None:
        self.key = ord(key)
        self.prompt = prompt
        self.entered_with: list[RunConfiguration] = []
        self.keys: list[str] = []
        self.on_done: Callable[[], None] | None = None

    def enter(self, config: RunConfiguration, on_done: Callable[[], None]) -> None:
        self.entered_with.append(config)
        self.on_done = on_done

    def on_key(self, key: str) -> None:
        self.keys.append(key)


async def settle(rounds: int = 3) -> None:
    """Let pending callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def snapshot_failure_summary(*paths: str) -> RunResultSummary:
    results = [
        TestFileResult(
            test_file_path=path,
            test_results=[
                TestCaseResult(
                    name="test_render",
                    full_name="test_render",
                    status=TestStatus.FAILED,
                    failure_message="snapshot does not match",
                )
            ],
            snapshot_failed=True,
        )
        for path in paths
    ]
    return RunResultSummary.from_test_results(results)
