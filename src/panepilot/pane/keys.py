"""Key token vocabulary accepted from the model.

A token is one discrete key event: a printable character, a named key such as
``Enter`` or ``PageDown``, or a Ctrl/Alt/Shift combination written either in
tmux notation (``C-c``, ``M-x``, ``S-Tab``) or in long form (``Ctrl+c``).
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass

from .base import UnknownKeyError


class Named(str, enum.Enum):
    ENTER = "Enter"
    TAB = "Tab"
    BACKSPACE = "Backspace"
    ESCAPE = "Escape"
    UP = "Up"
    DOWN = "Down"
    LEFT = "Left"
    RIGHT = "Right"
    HOME = "Home"
    END = "End"
    PAGE_UP = "PageUp"
    PAGE_DOWN = "PageDown"
    INSERT = "Insert"
    DELETE = "Delete"
    SPACE = "Space"


class Modifier(str, enum.Enum):
    CTRL = "Ctrl"
    ALT = "Alt"
    SHIFT = "Shift"


@dataclass(frozen=True, slots=True)
class LiteralKey:
    char: str


@dataclass(frozen=True, slots=True)
class NamedKey:
    name: Named


@dataclass(frozen=True, slots=True)
class ModifiedKey:
    modifiers: frozenset[Modifier]
    target: LiteralKey | NamedKey


KeyToken = LiteralKey | NamedKey | ModifiedKey

_NAME_ALIASES: dict[str, Named] = {
    "enter": Named.ENTER,
    "return": Named.ENTER,
    "tab": Named.TAB,
    "backspace": Named.BACKSPACE,
    "bspace": Named.BACKSPACE,
    "escape": Named.ESCAPE,
    "esc": Named.ESCAPE,
    "up": Named.UP,
    "down": Named.DOWN,
    "left": Named.LEFT,
    "right": Named.RIGHT,
    "home": Named.HOME,
    "end": Named.END,
    "pageup": Named.PAGE_UP,
    "pgup": Named.PAGE_UP,
    "ppage": Named.PAGE_UP,
    "pagedown": Named.PAGE_DOWN,
    "pgdn": Named.PAGE_DOWN,
    "npage": Named.PAGE_DOWN,
    "insert": Named.INSERT,
    "ic": Named.INSERT,
    "delete": Named.DELETE,
    "del": Named.DELETE,
    "dc": Named.DELETE,
    "space": Named.SPACE,
}

_CONTROL_CHARS: dict[str, Named] = {
    " ": Named.SPACE,
    "\n": Named.ENTER,
    "\r": Named.ENTER,
    "\t": Named.TAB,
}

_SHORT_MODIFIERS = {"C": Modifier.CTRL, "M": Modifier.ALT, "S": Modifier.SHIFT}
_LONG_MODIFIERS = {
    "ctrl": Modifier.CTRL,
    "control": Modifier.CTRL,
    "alt": Modifier.ALT,
    "meta": Modifier.ALT,
    "shift": Modifier.SHIFT,
}
_SHORT_PATTERN = re.compile(r"^((?:[CMS]-)+)(.+)$")
_LONG_PATTERN = re.compile(r"^((?:(?:ctrl|control|alt|meta|shift)\+)+)(.+)$", re.IGNORECASE)


def parse_key(token: str) -> KeyToken:
    """Parse one model-provided token or raise ``UnknownKeyError``."""
    simple = _parse_simple(token)
    if simple is not None:
        return simple

    modifiers: set[Modifier] = set()
    target_text: str | None = None
    short_match = _SHORT_PATTERN.match(token)
    long_match = _LONG_PATTERN.match(token)
    if short_match:
        modifiers = {_SHORT_MODIFIERS[part] for part in short_match.group(1).split("-") if part}
        target_text = short_match.group(2)
    elif long_match:
        modifiers = {
            _LONG_MODIFIERS[part.lower()] for part in long_match.group(1).split("+") if part
        }
        target_text = long_match.group(2)
    if target_text is None:
        raise UnknownKeyError(token)

    target = _parse_simple(target_text)
    if target is None:
        raise UnknownKeyError(token)
    if modifiers == {Modifier.SHIFT} and isinstance(target, LiteralKey):
        return LiteralKey(target.char.upper())
    return ModifiedKey(modifiers=frozenset(modifiers), target=target)


def _parse_simple(token: str) -> LiteralKey | NamedKey | None:
    if len(token) == 1:
        if token in _CONTROL_CHARS:
            return NamedKey(_CONTROL_CHARS[token])
        if token.isprintable():
            return LiteralKey(token)
        return None
    named = _NAME_ALIASES.get(token.lower())
    if named is not None:
        return NamedKey(named)
    return None
