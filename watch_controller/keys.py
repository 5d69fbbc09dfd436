"""Logical key codes for raw terminal input.

Raw stdin reads are hex-encoded, so every key is a string such as ``"61"``
for ``a`` or ``"1b5b41"`` for the up arrow.
"""

from __future__ import annotations

import binascii
from types import SimpleNamespace


def encode_key(raw: bytes | str) -> str:
    """Hex-encode a raw read from the terminal."""
    if isinstance(raw, str):
        raw = raw.encode("utf-8")
    return raw.hex()


def decode_key(key: str) -> str:
    """Return the literal text a hex-encoded key stands for."""
    try:
        return bytes.fromhex(key).decode("utf-8", errors="replace")
    except ValueError:
        return ""


def key_code(key: str) -> int | None:
    """Return the key as an integer code point, used for plugin hotkeys."""
    try:
        return int(key, 16)
    except ValueError:
        return None


def _letter(char: str) -> str:
    return binascii.hexlify(char.encode("ascii")).decode("ascii")


KEYS = SimpleNamespace(
    CONTROL_C="03",
    CONTROL_D="04",
    ENTER="0d",
    ESCAPE="1b",
    BACKSPACE="7f",
    ARROW_UP="1b5b41",
    ARROW_DOWN="1b5b42",
    ARROW_RIGHT="1b5b43",
    ARROW_LEFT="1b5b44",
    A=_letter("a"),
    C=_letter("c"),
    F=_letter("f"),
    I=_letter("i"),
    O=_letter("o"),
    P=_letter("p"),
    Q=_letter("q"),
    R=_letter("r"),
    S=_letter("s"),
    T=_letter("t"),
    U=_letter("u"),
    W=_letter("w"),
    QUESTION_MARK=_letter("?"),
)

QUIT_KEYS = frozenset({KEYS.CONTROL_C, KEYS.CONTROL_D})

# Keys that interrupt a run in flight instead of performing their command.
ABORT_ELIGIBLE_KEYS = frozenset(
    {KEYS.Q, KEYS.ENTER, KEYS.A, KEYS.O, KEYS.P, KEYS.T, KEYS.F}
)

# Hotkeys owned by built-in commands; plugins may not claim them.
RESERVED_KEY_CODES = frozenset(
    code
    for code in (
        key_code(k)
        for k in (
            KEYS.A, KEYS.C, KEYS.F, KEYS.I, KEYS.O, KEYS.P,
            KEYS.Q, KEYS.T, KEYS.U, KEYS.W, KEYS.QUESTION_MARK,
        )
    )
    if code is not None
)
