"""Optional human review of decoded responses in an external editor."""

from __future__ import annotations

import logging
import select
import shlex
import subprocess
import sys
import tempfile
from pathlib import Path
from typing import Protocol, TextIO

LOGGER = logging.getLogger(__name__)


class ReviewHook(Protocol):
    def review(self, text: str, timeout: float) -> str | None:
        """Return edited text, or ``None`` when no edit was made."""


class EditorReview:
    """Offers a short window to open the pretty-printed response in ``$EDITOR``."""

    def __init__(self, editor: str, *, stdin: TextIO | None = None) -> None:
        self.editor = editor
        self.stdin = stdin if stdin is not None else sys.stdin

    def review(self, text: str, timeout: float) -> str | None:
        print(f"\nPress Enter within {timeout:g}s to edit the response...", flush=True)
        if not self._wait_for_input(timeout):
            return None
        self.stdin.readline()

        with tempfile.NamedTemporaryFile(
            "w", suffix=".json", prefix="panepilot-", delete=False, encoding="utf-8"
        ) as handle:
            handle.write(text)
            path = Path(handle.name)
        try:
            result = subprocess.run([*shlex.split(self.editor), str(path)], check=False)
            if result.returncode != 0:
                LOGGER.warning(
                    "review_editor_failed",
                    extra={"editor": self.editor, "returncode": result.returncode},
                )
                return None
            edited = path.read_text(encoding="utf-8")
        except OSError as exc:
            LOGGER.warning("review_editor_failed", extra={"editor": self.editor, "error": str(exc)})
            return None
        finally:
            path.unlink(missing_ok=True)
        return edited if edited.strip() else None

    def _wait_for_input(self, timeout: float) -> bool:
        try:
            readable, _, _ = select.select([self.stdin], [], [], timeout)
        except (OSError, ValueError):
            # stdin is not selectable (redirected, captured, or unsupported platform)
            return False
        return bool(readable)
