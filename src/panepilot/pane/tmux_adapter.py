"""tmux pane backend implementation."""

from __future__ import annotations

import logging
import subprocess
import time
from collections.abc import Sequence

from .base import (
    CaptureError,
    CursorPosition,
    KeySendError,
    PaneBackend,
    PaneGeometry,
    ScreenCapture,
    SessionCreationError,
    UnknownKeyError,
    build_capture,
)
from .keys import KeyToken, LiteralKey, Modifier, ModifiedKey, Named, NamedKey, parse_key

LOGGER = logging.getLogger(__name__)

_TMUX_NAMES: dict[Named, str] = {
    Named.ENTER: "Enter",
    Named.TAB: "Tab",
    Named.BACKSPACE: "BSpace",
    Named.ESCAPE: "Escape",
    Named.UP: "Up",
    Named.DOWN: "Down",
    Named.LEFT: "Left",
    Named.RIGHT: "Right",
    Named.HOME: "Home",
    Named.END: "End",
    Named.PAGE_UP: "PPage",
    Named.PAGE_DOWN: "NPage",
    Named.INSERT: "IC",
    Named.DELETE: "DC",
    Named.SPACE: "Space",
}
_TMUX_PREFIXES = ((Modifier.CTRL, "C-"), (Modifier.ALT, "M-"), (Modifier.SHIFT, "S-"))
_CURSOR_FORMAT = "#{cursor_x},#{cursor_y}"


class TmuxPane(PaneBackend):
    """Pane backend driving a detached ``tmux`` session."""

    def __init__(
        self,
        session_name: str,
        *,
        executable: str = "tmux",
        key_delay: float = 0.05,
        startup_delay: float = 1.0,
        unknown_key_policy: str = "literal",
    ) -> None:
        super().__init__(key_delay=key_delay, unknown_key_policy=unknown_key_policy)
        self.session_name = session_name
        self.executable = executable
        self.startup_delay = startup_delay
        self.geometry: PaneGeometry | None = None
        self._active = False

    @property
    def name(self) -> str:
        return "tmux"

    @property
    def active(self) -> bool:
        return self._active

    def create(self, geometry: PaneGeometry) -> None:
        self.geometry = geometry
        columns, rows = str(geometry.columns), str(geometry.rows)
        self._run_setup(
            ["new-session", "-d", "-s", self.session_name, "-n", "main", "-x", columns, "-y", rows]
        )
        self._active = True
        self._run_setup(["set-option", "-t", self.session_name, "status", "off"])
        self._run_setup(["resize-pane", "-t", self.session_name, "-x", columns, "-y", rows])
        self._run_setup(["send-keys", "-t", self.session_name, "clear", "Enter"])
        LOGGER.info(
            "pane_session_created",
            extra={"session": self.session_name, "columns": geometry.columns, "rows": geometry.rows},
        )
        if self.startup_delay > 0:
            time.sleep(self.startup_delay)

    def send(self, sequence: Sequence[str]) -> None:
        resolved = [self._resolve(token) for token in sequence]
        for index, key in enumerate(resolved):
            if index:
                self.pause_between_keys()
            self._send_one(key)
        self.log_keys(sequence)

    def capture(self) -> ScreenCapture:
        if self.geometry is None:
            raise CaptureError("Pane session has not been created")
        content = self._run_query(["capture-pane", "-p", "-t", self.session_name])
        cursor_report = self._run_query(
            ["display-message", "-p", "-t", self.session_name, _CURSOR_FORMAT]
        )
        return build_capture(content, _parse_cursor(cursor_report), self.geometry)

    def destroy(self) -> None:
        if not self._active:
            return
        self._active = False
        try:
            result = self._run_tmux(["kill-session", "-t", self.session_name])
        except OSError as exc:
            LOGGER.warning(
                "pane_session_destroy_failed",
                extra={"session": self.session_name, "error": str(exc)},
            )
            return
        if result.returncode != 0:
            LOGGER.warning(
                "pane_session_destroy_failed",
                extra={"session": self.session_name, "error": result.stderr.strip()},
            )
            return
        LOGGER.info("pane_session_destroyed", extra={"session": self.session_name})

    def _resolve(self, token: str) -> KeyToken | str:
        try:
            return parse_key(token)
        except UnknownKeyError:
            if self.unknown_key_policy == "reject":
                raise
            LOGGER.warning("pane_unknown_key_passthrough", extra={"token": token})
            return token

    def _send_one(self, key: KeyToken | str) -> None:
        args = ["send-keys", "-t", self.session_name]
        if isinstance(key, str):
            args += ["-l", _escape_separator(key)]
        elif isinstance(key, LiteralKey):
            args += ["-l", _escape_separator(key.char)]
        else:
            args.append(tmux_key_name(key))
        try:
            result = self._run_tmux(args)
        except OSError as exc:
            raise KeySendError(f"tmux send-keys failed: {exc}") from exc
        if result.returncode != 0:
            raise KeySendError(f"tmux send-keys failed: {result.stderr.strip()}")

    def _run_setup(self, args: list[str]) -> None:
        try:
            result = self._run_tmux(args)
        except OSError as exc:
            raise SessionCreationError(f"Unable to run {self.executable}: {exc}") from exc
        if result.returncode != 0:
            msg = f"tmux {args[0]} failed: {result.stderr.strip()}"
            raise SessionCreationError(msg)

    def _run_query(self, args: list[str]) -> str:
        try:
            result = self._run_tmux(args)
        except OSError as exc:
            raise CaptureError(f"Unable to run {self.executable}: {exc}") from exc
        if result.returncode != 0:
            raise CaptureError(f"tmux {args[0]} failed: {result.stderr.strip()}")
        return result.stdout

    def _run_tmux(self, args: list[str]) -> subprocess.CompletedProcess[str]:
        return subprocess.run(
            [self.executable, *args],
            capture_output=True,
            text=True,
            check=False,
        )


def tmux_key_name(key: NamedKey | ModifiedKey) -> str:
    """Render a named or modified key in tmux ``send-keys`` notation."""
    if isinstance(key, NamedKey):
        return _TMUX_NAMES[key.name]
    prefix = "".join(text for modifier, text in _TMUX_PREFIXES if modifier in key.modifiers)
    if isinstance(key.target, NamedKey):
        return f"{prefix}{_TMUX_NAMES[key.target.name]}"
    return f"{prefix}{key.target.char}"


def _escape_separator(text: str) -> str:
    # tmux splits commands on an argument ending in an unescaped ';'
    if text.endswith(";") and not text.endswith("\\;"):
        return f"{text[:-1]}\\;"
    return text


def _parse_cursor(report: str) -> CursorPosition:
    try:
        x_text, y_text = report.strip().split(",")
        return CursorPosition(x=int(x_text), y=int(y_text))
    except ValueError as exc:
        raise CaptureError(f"Unexpected cursor report: {report!r}") from exc
