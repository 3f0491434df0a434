"""Iteration history and its periodic condensation."""

from __future__ import annotations

import logging

from panepilot.agent.ensemble import CompletionSource
from panepilot.agent.models import IterationRecord
from panepilot.agent.prompts import END_SUMMARY, PromptAssembler, PromptContext
from panepilot.pane import ScreenCapture

LOGGER = logging.getLogger(__name__)

SUMMARY_PARAMS: dict[str, object] = {"n_predict": 390, "temperature": 0.7}


class HistoryLog:
    """Append-only iteration records plus the summaries that replaced older ones."""

    def __init__(self, *, include_console_state: bool = False) -> None:
        self.include_console_state = include_console_state
        self._records: list[IterationRecord] = []
        self._summaries: list[str] = []

    @property
    def entry_count(self) -> int:
        return len(self._records)

    @property
    def records(self) -> tuple[IterationRecord, ...]:
        return tuple(self._records)

    @property
    def summaries(self) -> tuple[str, ...]:
        return tuple(self._summaries)

    def append(self, record: IterationRecord) -> None:
        self._records.append(record)

    def needs_compaction(self, limit: int) -> bool:
        return self.entry_count >= limit

    def replace_with_summary(self, summary: str) -> None:
        """Drop the raw records and keep ``summary`` after the earlier ones."""
        self._summaries.append(summary)
        self._records.clear()

    def render(self) -> str:
        parts = [f"An older summary:\n{summary}" for summary in self._summaries]
        parts.extend(
            record.render(include_console_state=self.include_console_state)
            for record in self._records
        )
        return "\n\n".join(parts)


class HistoryCompactor:
    """Condenses the history log into a short bullet digest."""

    def __init__(
        self,
        client: CompletionSource,
        prompts: PromptAssembler,
        *,
        summary_max_chars: int = 390,
    ) -> None:
        self.client = client
        self.prompts = prompts
        self.summary_max_chars = summary_max_chars

    def compact(self, history: HistoryLog, mission: str, capture: ScreenCapture) -> str:
        """Replace the raw records with a digest built from them and ``capture``."""
        context = PromptContext(mission=mission, capture=capture)
        prompt = self.prompts.summary(history.render(), context, self.summary_max_chars)
        result = self.client.complete(
            prompt, SUMMARY_PARAMS, stop_at=END_SUMMARY, kind="summary", expect_json=False
        )
        summary = result.text_before(END_SUMMARY)
        if not summary:
            summary = _fallback_summary(history)
            LOGGER.warning(
                "history_summary_fallback",
                extra={"error": result.error, "entry_count": history.entry_count},
            )

        compacted_entries = history.entry_count
        history.replace_with_summary(summary)
        LOGGER.info(
            "history_compacted",
            extra={
                "compacted_entries": compacted_entries,
                "summary_chars": len(summary),
                "summary_count": len(history.summaries),
            },
        )
        return summary


def _fallback_summary(history: HistoryLog) -> str:
    # Keeps the running plan when the model returned nothing usable.
    if not history.records:
        return "- no progress recorded"
    latest = history.records[-1].response
    return "\n".join(
        [
            f"- plan: {latest.planning_note}",
            f"- next: {latest.next_step_note}",
            f"- iterations condensed: {history.entry_count}",
        ]
    )
