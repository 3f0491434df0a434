"""Base pane backend primitives and screen normalization."""

from __future__ import annotations

import abc
import logging
import time
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass

LOGGER = logging.getLogger(__name__)

CURSOR_MARK = "█"


class PaneError(RuntimeError):
    """Base class for failures reported by a pane backend."""


class SessionCreationError(PaneError):
    """The backend session could not be started."""


class CaptureError(PaneError):
    """The visible buffer or cursor position could not be read."""


class KeySendError(PaneError):
    """A key event could not be delivered to the pane."""


class UnknownKeyError(PaneError, ValueError):
    """A key token is not part of the supported key vocabulary."""

    def __init__(self, token: str) -> None:
        super().__init__(f"Unrecognized key token: {token!r}")
        self.token = token


@dataclass(frozen=True, slots=True)
class PaneGeometry:
    columns: int = 80
    rows: int = 24

    def __post_init__(self) -> None:
        if self.columns <= 0 or self.rows <= 0:
            msg = f"Pane geometry must be positive, got {self.columns}x{self.rows}"
            raise ValueError(msg)


@dataclass(frozen=True, slots=True)
class CursorPosition:
    x: int
    y: int


@dataclass(frozen=True, slots=True)
class ScreenCapture:
    """Fixed-size snapshot of the visible pane plus the cursor location."""

    lines: tuple[str, ...]
    cursor: CursorPosition
    geometry: PaneGeometry

    def render(self) -> str:
        """Return numbered lines with the cursor cell marked for prompting."""
        rendered: list[str] = []
        for index, line in enumerate(self.lines):
            if index == self.cursor.y:
                x = self.cursor.x
                line = f"{line[:x]}{CURSOR_MARK}{line[x + 1:]}"
            rendered.append(f"{index:>2} |{line}")
        return "\n".join(rendered)


def normalize_lines(raw_lines: Sequence[str], geometry: PaneGeometry) -> tuple[str, ...]:
    """Pad or truncate captured lines to exactly ``rows`` x ``columns``."""
    width = geometry.columns
    lines = [line.ljust(width)[:width] for line in list(raw_lines)[: geometry.rows]]
    lines.extend(" " * width for _ in range(geometry.rows - len(lines)))
    return tuple(lines)


def build_capture(raw_text: str, cursor: CursorPosition, geometry: PaneGeometry) -> ScreenCapture:
    """Build a normalized capture, rejecting cursors outside the geometry."""
    if not (0 <= cursor.x < geometry.columns and 0 <= cursor.y < geometry.rows):
        msg = (
            f"Cursor ({cursor.x}, {cursor.y}) is outside the "
            f"{geometry.columns}x{geometry.rows} pane"
        )
        raise CaptureError(msg)
    raw_lines = raw_text.splitlines()
    return ScreenCapture(
        lines=normalize_lines(raw_lines, geometry),
        cursor=cursor,
        geometry=geometry,
    )


class PaneBackend(abc.ABC):
    """Abstract terminal pane that can be typed into and read back."""

    def __init__(self, *, key_delay: float = 0.05, unknown_key_policy: str = "literal") -> None:
        if unknown_key_policy not in {"literal", "reject"}:
            msg = f"Unsupported unknown key policy: {unknown_key_policy}"
            raise ValueError(msg)
        self.key_delay = key_delay
        self.unknown_key_policy = unknown_key_policy

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Friendly backend name."""

    @abc.abstractmethod
    def create(self, geometry: PaneGeometry) -> None:
        """Start the backend session with a fixed geometry."""

    @abc.abstractmethod
    def send(self, sequence: Sequence[str]) -> None:
        """Deliver key tokens to the pane one at a time, in order."""

    @abc.abstractmethod
    def capture(self) -> ScreenCapture:
        """Return a normalized snapshot of the visible pane."""

    @abc.abstractmethod
    def destroy(self) -> None:
        """Tear the session down. Safe to call more than once."""

    @contextmanager
    def session(self, geometry: PaneGeometry) -> Iterator[PaneBackend]:
        """Hold the session open for the duration of the block."""
        try:
            self.create(geometry)
            yield self
        finally:
            self.destroy()

    def pause_between_keys(self) -> None:
        if self.key_delay > 0:
            time.sleep(self.key_delay)

    def log_keys(self, sequence: Sequence[str]) -> None:
        LOGGER.info(
            "pane_keys_sent",
            extra={"backend": self.name, "key_count": len(sequence)},
        )
