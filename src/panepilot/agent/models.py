"""Data models used by the mission loop."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Literal

from panepilot.pane import CursorPosition, ScreenCapture

RunStatus = Literal["complete", "aborted", "exhausted"]

PLAN_KEY = "branch_map"
NEXT_STEP_KEY = "next_move"


@dataclass(frozen=True, slots=True)
class CandidateResponse:
    """A validated model-proposed action for the current iteration."""

    reasoning: str
    mission_complete: bool
    keypresses: tuple[str, ...]
    planning_note: str
    next_step_note: str
    critic_evaluation: str | None = None

    def with_critique(self, critique: str) -> CandidateResponse:
        return replace(self, critic_evaluation=critique)

    def to_payload(self, *, include_critique: bool = True) -> dict[str, object]:
        payload: dict[str, object] = {
            "reasoning": self.reasoning,
            "mission_complete": self.mission_complete,
            PLAN_KEY: self.planning_note,
            "keypresses": list(self.keypresses),
            NEXT_STEP_KEY: self.next_step_note,
        }
        if include_critique and self.critic_evaluation is not None:
            payload["critic_evaluation"] = self.critic_evaluation
        return payload

    def to_json(self, *, include_critique: bool = True) -> str:
        return json.dumps(self.to_payload(include_critique=include_critique), ensure_ascii=False)


@dataclass(frozen=True, slots=True)
class Selection:
    """The candidate chosen by the model, with its 1-based index in the pool."""

    index: int
    candidate: CandidateResponse


@dataclass(frozen=True, slots=True)
class IterationRecord:
    """One completed iteration as kept in the history log."""

    cursor: CursorPosition
    screen: ScreenCapture
    response: CandidateResponse
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def render(self, *, include_console_state: bool = False) -> str:
        lines = [f"[{self.timestamp}]"]
        if include_console_state:
            lines.append(f"Cursor Position: ({self.cursor.x}, {self.cursor.y})")
            lines.append("Console State:")
            lines.append(self.screen.render())
        lines.append(self.response.to_json(include_critique=False))
        if self.response.critic_evaluation:
            lines.append(
                "Evaluation of this step by an external critic: "
                f"{self.response.critic_evaluation}"
            )
        return "\n".join(lines)


@dataclass(slots=True)
class RunState:
    iteration: int = 0
    mission_complete: bool = False
    previous_next_step: str = ""
    interrupted: bool = False


@dataclass(slots=True)
class RunOutcome:
    status: RunStatus
    iterations: int
    interrupted: bool = False
    error: str | None = None
    final_response: CandidateResponse | None = None
