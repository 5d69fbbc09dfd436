"""Terminal control for the watch session.

Owns the raw-mode lifecycle and the keystroke stream. Raw mode is acquired
for the whole session and restored on every exit path, including quit and
engine faults that escape the event loop.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import sys
from typing import AsyncIterator, Callable, Iterator, TextIO

from .keys import encode_key

logger = logging.getLogger(__name__)

ESC = "\x1b["
CLEAR = "\x1b[2J\x1b[3J\x1b[H"
CLEAR_SCREEN = "\x1bc"
CURSOR_UP = f"{ESC}1A"
CURSOR_DOWN = f"{ESC}1B"
ERASE_DOWN = f"{ESC}J"
CURSOR_HIDE = f"{ESC}?25l"
CURSOR_SHOW = f"{ESC}?25h"

READ_SIZE = 1024


def is_interactive(stream: TextIO | None = None) -> bool:
    """Return whether menus and screen clears make sense on ``stream``."""
    stream = stream if stream is not None else sys.stdout
    if os.environ.get("CI"):
        return False
    if os.environ.get("TERM", "") == "dumb":
        return False
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


def _fileno(stream: object) -> int | None:
    try:
        return stream.fileno()  # type: ignore[attr-defined]
    except (AttributeError, OSError, ValueError):
        return None


class TerminalController:
    """Manage raw-mode transitions for the session's stdin."""

    def __init__(
        self,
        stdin: TextIO,
        output: TextIO,
        *,
        prompt_visible: Callable[[], bool] = lambda: False,
    ) -> None:
        self.stdin = stdin
        self.output = output
        self.stdin_fd = _fileno(stdin)
        self._saved_tty_state: list | None = None
        self._prompt_visible = prompt_visible

    @property
    def is_tty(self) -> bool:
        return self.stdin_fd is not None and os.isatty(self.stdin_fd)

    def enable_raw_mode(self) -> None:
        if not self.is_tty:
            logger.debug("stdin is not a tty, skipping raw mode")
            return
        import termios
        import tty

        self._saved_tty_state = termios.tcgetattr(self.stdin_fd)
        # cbreak keeps output post-processing so "\n" still returns the carriage.
        tty.setcbreak(self.stdin_fd, termios.TCSANOW)
        attrs = termios.tcgetattr(self.stdin_fd)
        attrs[3] &= ~termios.ISIG  # Ctrl-C arrives as a key, not SIGINT
        termios.tcsetattr(self.stdin_fd, termios.TCSANOW, attrs)

    def disable_raw_mode(self) -> None:
        if self._prompt_visible():
            self.output.write(CURSOR_DOWN)
            self.output.write(ERASE_DOWN)
        self.output.write(CURSOR_SHOW)
        self.output.flush()
        if self._saved_tty_state is not None:
            import termios

            termios.tcsetattr(self.stdin_fd, termios.TCSAFLUSH, self._saved_tty_state)
            self._saved_tty_state = None

    @contextlib.contextmanager
    def raw_mode(self) -> Iterator[TerminalController]:
        """Context manager that brackets code with raw-mode enter/exit."""
        try:
            self.enable_raw_mode()
            yield self
        finally:
            self.disable_raw_mode()


@contextlib.contextmanager
def interactive_terminal(
    stdin: TextIO,
    output: TextIO,
    *,
    prompt_visible: Callable[[], bool] = lambda: False,
) -> Iterator[TerminalController]:
    """Acquire terminal control for a session and always give it back."""
    controller = TerminalController(stdin, output, prompt_visible=prompt_visible)
    with controller.raw_mode():
        yield controller


async def read_keys(stdin: TextIO) -> AsyncIterator[str]:
    """Yield hex-encoded keystrokes from ``stdin`` until end of input."""
    fd = _fileno(stdin)
    if fd is None:
        return
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[bytes] = asyncio.Queue()

    def on_readable() -> None:
        try:
            data = os.read(fd, READ_SIZE)
        except OSError as e:
            logger.warning("Failed to read from stdin: %s", e)
            data = b""
        queue.put_nowait(data)

    loop.add_reader(fd, on_readable)
    try:
        while True:
            data = await queue.get()
            if not data:
                return
            yield encode_key(data)
    finally:
        loop.remove_reader(fd)
