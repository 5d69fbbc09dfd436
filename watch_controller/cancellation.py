"""Per-run cooperative cancellation."""

from __future__ import annotations

import logging
from typing import Callable

logger = logging.getLogger(__name__)


class CancellationToken:
    """Advisory interrupt flag owned by exactly one run.

    Setting the flag never stops anything by itself. The execution engine
    either polls ``is_interrupted()`` or registers a listener and aborts on
    its own schedule. A token is never reused across runs.
    """

    def __init__(self, *, is_watch_mode: bool = True) -> None:
        self.is_watch_mode = is_watch_mode
        self.interrupted = False
        self._listeners: list[Callable[[CancellationToken], None]] = []

    def is_interrupted(self) -> bool:
        return self.interrupted

    def interrupt(self) -> None:
        """Request that the owning run stop as soon as it can."""
        self.set_state(interrupted=True)

    def set_state(self, *, interrupted: bool) -> None:
        changed = interrupted != self.interrupted
        self.interrupted = interrupted
        if changed:
            self._notify()

    def add_listener(self, callback: Callable[[CancellationToken], None]) -> None:
        self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[CancellationToken], None]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _notify(self) -> None:
        for callback in list(self._listeners):
            try:
                callback(self)
            except Exception as e:
                logger.warning("Cancellation listener failed: %s", e)

    def __repr__(self) -> str:
        return f"CancellationToken(interrupted={self.interrupted})"
