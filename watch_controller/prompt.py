"""Text-entry prompt over raw keystrokes."""

from __future__ import annotations

from typing import Any, Callable

from .keys import KEYS, decode_key

ChangeCallback = Callable[[str, dict[str, Any]], None]
SuccessCallback = Callable[[str], None]
CancelCallback = Callable[[str], None]

TYPEAHEAD_MAX = 10


def _noop(*args: Any) -> None:
    return None


class Prompt:
    """Accumulates keystrokes into a pattern until confirmed or cancelled.

    ENTER confirms, ESCAPE cancels, BACKSPACE deletes, arrow up/down move the
    typeahead selection. Any other key is decoded and appended. The buffer
    is cleared whenever the prompt exits.
    """

    def __init__(self) -> None:
        self._entering = False
        self._value = ""
        self._on_change: ChangeCallback = _noop
        self._on_success: SuccessCallback = _noop
        self._on_cancel: CancelCallback = _noop
        self._typeahead_offset = -1
        self._typeahead_length = 0
        self._typeahead_selection: str | None = None

    def enter(
        self,
        on_change: ChangeCallback,
        on_success: SuccessCallback,
        on_cancel: CancelCallback,
    ) -> None:
        self._entering = True
        self._value = ""
        self._on_change = on_change
        self._on_success = on_success
        self._on_cancel = on_cancel
        self._typeahead_selection = None
        self._typeahead_offset = -1
        self._typeahead_length = 0
        self._on_change(self._value, self._options())

    @property
    def value(self) -> str:
        return self._value

    @property
    def selection(self) -> str | None:
        return self._typeahead_selection

    def set_typeahead_length(self, length: int) -> None:
        self._typeahead_length = length

    def set_typeahead_selection(self, selected: str | None) -> None:
        self._typeahead_selection = selected

    def put(self, key: str) -> None:
        if key == KEYS.ENTER:
            value = self._typeahead_selection or self._value
            on_success = self._on_success
            self.abort()
            on_success(value)
        elif key == KEYS.ESCAPE:
            value = self._value
            on_cancel = self._on_cancel
            self.abort()
            on_cancel(value)
        elif key == KEYS.ARROW_DOWN:
            self._typeahead_offset = min(
                self._typeahead_offset + 1, self._typeahead_length - 1
            )
            self._on_change(self._value, self._options())
        elif key == KEYS.ARROW_UP:
            self._typeahead_offset = max(self._typeahead_offset - 1, -1)
            self._on_change(self._value, self._options())
        elif key in (KEYS.ARROW_LEFT, KEYS.ARROW_RIGHT):
            pass
        else:
            if key == KEYS.BACKSPACE:
                self._value = self._value[:-1]
            else:
                self._value += decode_key(key)
            self._typeahead_offset = -1
            self._typeahead_selection = None
            self._on_change(self._value, self._options())

    def abort(self) -> None:
        """Leave the prompt without calling either callback."""
        self._entering = False
        self._value = ""
        self._typeahead_offset = -1
        self._typeahead_selection = None

    def is_entering(self) -> bool:
        return self._entering

    def _options(self) -> dict[str, Any]:
        return {"max": TYPEAHEAD_MAX, "offset": self._typeahead_offset}
