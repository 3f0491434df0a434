"""Append-only audit log of every prompt and raw completion."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

from panepilot.llm.decoder import CompletionResult

LOG_VERSION = 1


class TranscriptLog:
    """Writes one JSON line per completion to a per-day file."""

    def __init__(self, log_dir: str | Path, *, session_name: str | None = None) -> None:
        self.log_dir = Path(log_dir)
        self.session_name = session_name

    def path_for_today(self) -> Path:
        return self.log_dir / f"transcript-{datetime.now(timezone.utc).date().isoformat()}.log"

    def record(
        self,
        *,
        kind: str,
        prompt: str,
        result: CompletionResult,
        stop_at: str | None = None,
    ) -> None:
        self.log_dir.mkdir(parents=True, exist_ok=True)
        entry = {
            "log_version": LOG_VERSION,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "session": self.session_name,
            "kind": kind,
            "prompt": prompt,
            "response": result.text,
            "json_text": result.json_text,
            "stop_at": stop_at,
            "stopped_at_marker": result.stopped_at_marker,
            "error": result.error,
        }
        with self.path_for_today().open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(entry, ensure_ascii=False) + "\n")
