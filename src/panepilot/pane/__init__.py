"""Pane backend implementations."""

import uuid

from .base import (
    CaptureError,
    CursorPosition,
    KeySendError,
    PaneBackend,
    PaneError,
    PaneGeometry,
    ScreenCapture,
    SessionCreationError,
    UnknownKeyError,
)
from .tmux_adapter import TmuxPane


def new_session_name(prefix: str = "panepilot") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


def create_pane_backend(
    backend_name: str,
    *,
    session_prefix: str = "panepilot",
    key_delay: float = 0.05,
    unknown_key_policy: str = "literal",
) -> PaneBackend:
    normalized = backend_name.strip().lower()
    if normalized == "tmux":
        return TmuxPane(
            new_session_name(session_prefix),
            key_delay=key_delay,
            unknown_key_policy=unknown_key_policy,
        )
    msg = f"Unsupported pane backend: {backend_name}"
    raise ValueError(msg)


__all__ = [
    "CaptureError",
    "CursorPosition",
    "KeySendError",
    "PaneBackend",
    "PaneError",
    "PaneGeometry",
    "ScreenCapture",
    "SessionCreationError",
    "TmuxPane",
    "UnknownKeyError",
    "create_pane_backend",
    "new_session_name",
]
