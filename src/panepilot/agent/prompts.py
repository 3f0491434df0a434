"""Default prompt texts for each request the mission loop makes."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from panepilot.agent.models import NEXT_STEP_KEY, PLAN_KEY, CandidateResponse
from panepilot.pane import ScreenCapture

NO_CHANGE = "NO_CHANGE"
END_EVALUATION = "END_EVALUATION"
END_SELECT = "END_SELECT"
END_SUMMARY = "END_SUMMARY"

KEY_RULES = "\n".join(
    [
        "Instructions for issuing keypresses:",
        '- Normal characters: "a", "B", "1", ".", "\\"" and so on, one per element.',
        (
            '- Named keys, spelled literally: "Enter", "Tab", "BSpace", "Escape", "Up",'
            ' "Down", "Left", "Right", "Home", "End", "PageUp", "PageDown", "Insert",'
            ' "Delete", "Space".'
        ),
        '- Ctrl keys use C- notation ("C-c", "C-r"); Alt keys use M- notation ("M-x").',
        "- Send uppercase letters directly; no Shift notation is needed for them.",
        '- Spell a space between words as "Space".',
        '- Type a shell command key by key and finish it with "Enter".',
        '- "C-d" is forbidden. Use "C-c" to interrupt and "exit" to leave a shell.',
        "- One command per iteration; never chain several commands.",
        '- Examples: ["l", "s", "Enter"], ["C-c"], ["g", "i", "t", "Space", "l", "o", "g", "Enter"]',
    ]
)

CONSOLE_RULES = "\n".join(
    [
        "Instructions for operating the console session:",
        "- Each console line is prefixed with its row number; the prefix is not console content.",
        "- The cursor position is marked with the block symbol '█'.",
        "- Only the visible area exists; there is no scrollback.",
        "- Expect commands to open pagers or editors and navigate them deliberately.",
        "- When a pager is open, page through everything relevant before quitting it.",
    ]
)


@dataclass(frozen=True, slots=True)
class PromptContext:
    """The parts of the current iteration every prompt needs."""

    mission: str
    capture: ScreenCapture
    previous_next_step: str = ""


class PromptAssembler:
    """Builds the plain-text prompts sent to the completion service."""

    def main(self, context: PromptContext, history_text: str, steps_left: int) -> str:
        return "\n".join(
            [
                "You are a specialized assistant guiding the user step by step through a",
                "console session. Each iteration, study the latest console output, the",
                "mission and the history, then propose exactly one carefully checked",
                "sequence of keypresses.",
                "",
                KEY_RULES,
                "",
                f'Keep "{PLAN_KEY}" as the big-picture plan: mark your position and skip completed steps.',
                f'"{NEXT_STEP_KEY}" describes the immediate next action or a step to revisit.',
                'Keep "reasoning" short and factual.',
                'Set "mission_complete" to true only when the mission is fully done.',
                "",
                "Return valid JSON with this shape:",
                "{",
                '  "reasoning": "(brief reason)",',
                '  "mission_complete": false,',
                f'  "{PLAN_KEY}": "(plan)",',
                '  "keypresses": ["...", "Enter"],',
                f'  "{NEXT_STEP_KEY}": "(immediate next step)"',
                "}",
                "",
                f"You have {steps_left} iteration steps left before the history is condensed.",
                "",
                "=====================",
                "HISTORY SNIPPET:",
                history_text,
                "=====================",
                "",
                "MISSION:",
                context.mission,
                "",
                *self._previous_step_lines(context),
                self._console_block(context),
                "",
                "Provide your JSON response now:",
                "```json",
            ]
        )

    def critic(self, candidate: CandidateResponse, context: PromptContext, max_chars: int) -> str:
        return "\n".join(
            [
                "You are evaluating one suggestion made by a console assistant that helps",
                "the user accomplish a mission by proposing keypresses.",
                "",
                "The user's mission:",
                "--",
                context.mission,
                "--",
                "",
                self._console_block(context),
                "",
                "The suggestion:",
                f"Reasoning: {candidate.reasoning}",
                f"Keypresses array: {list(candidate.keypresses)}",
                f"Mission complete: {candidate.mission_complete}",
                f"Plan: {candidate.planning_note}",
                f"Next step: {candidate.next_step_note}",
                "",
                "Will these keypresses deliver what was intended? Typing E, n, t, e, r is not",
                "the same as pressing Enter. Consider the effect of every single press, look",
                "for omissions and for presses that are not needed.",
                "",
                f"Your output will be cut off after {max_chars} characters, so be concise.",
                f'When you are done, end with "{END_EVALUATION}".',
                "",
                "EVALUATION:",
            ]
        )

    def select(
        self,
        candidates: Sequence[CandidateResponse],
        context: PromptContext,
        *,
        include_critique: bool,
    ) -> str:
        lines = [
            "You are selecting the best of several suggestions made by a console assistant",
            "for the same situation. Some suggestions may contain mistakes.",
            "",
            CONSOLE_RULES,
            "",
            KEY_RULES,
            "",
            "The user's mission:",
            "--",
            context.mission,
            "--",
            "",
            self._console_block(context),
            "",
            "Suggestions:",
        ]
        for number, candidate in enumerate(candidates, start=1):
            lines.append(f"Response #{number}")
            lines.append(f"Response {number} keypresses: {list(candidate.keypresses)}")
            lines.append(f"Response {number} reasoning: {candidate.reasoning}")
            if include_critique and candidate.critic_evaluation:
                lines.append(
                    f"Response {number} evaluation from an external critic: "
                    f"{candidate.critic_evaluation}"
                )
            lines.append("")
        lines.extend(self._previous_step_lines(context))
        lines.extend(
            [
                "Choose the best response number given the mission and the console state",
                f"and reply with that single number, then {END_SELECT}.",
                "",
                "The best response number is:",
            ]
        )
        return "\n".join(lines)

    def apply_critic(
        self,
        candidates: Sequence[CandidateResponse],
        selected_number: int,
        context: PromptContext,
    ) -> str:
        lines = [
            "You are applying critic feedback to the response chosen for this iteration",
            "of a console assistant. This is the last chance to correct it.",
            "",
            CONSOLE_RULES,
            "",
            KEY_RULES,
            "",
            "The user's mission:",
            "--",
            context.mission,
            "--",
            "",
            self._console_block(context),
            "",
            "Responses and their critic evaluations:",
            "",
        ]
        for number, candidate in enumerate(candidates, start=1):
            lines.append(f"Response #{number}:")
            lines.append(candidate.to_json())
            lines.append("")
        lines.extend(
            [
                "End of responses.",
                "",
                f"Selected response number: {selected_number}",
                "",
                "Reply in valid JSON only, one keypress per element of \"keypresses\".",
                "Reproduce the parts you are not changing verbatim and integrate the rest.",
                (
                    f'Fields "reasoning", "mission_complete", "{PLAN_KEY}", "keypresses" and'
                    f' "{NEXT_STEP_KEY}" are mandatory.'
                ),
                f"If the selected response needs no change, reply with {NO_CHANGE} and stop.",
                "Your best response given this information is:",
                "```json",
            ]
        )
        return "\n".join(lines)

    def summary(self, history_text: str, context: PromptContext, max_chars: int) -> str:
        return "\n".join(
            [
                "You are condensing the log of a console assistant working on a mission.",
                "Your output replaces the log entries for the next iterations.",
                "",
                "Extract the overall plan, its substeps and the steps already completed.",
                "Carry over solutions to any problems or errors encountered.",
                "Carry over any older summaries in the log.",
                "Carry over any data relevant to the mission.",
                "Point out repetitive behaviour that is not making progress and suggest a fix.",
                "",
                "The mission:",
                "--",
                context.mission,
                "--",
                "",
                "Full log:",
                "-" * 72,
                history_text,
                "-" * 72,
                "",
                "Console state after the last iteration:",
                self._console_block(context),
                "",
                "Report format:",
                "- very brief bullet points, one per line",
                f"- at most {max_chars} characters",
                f'- end the report with "{END_SUMMARY}"',
                "",
                "Summary:",
            ]
        )

    @staticmethod
    def _console_block(context: PromptContext) -> str:
        capture = context.capture
        geometry = capture.geometry
        return "\n".join(
            [
                f"CONSOLE ({geometry.columns}x{geometry.rows}, "
                f"cursor at ({capture.cursor.x}, {capture.cursor.y})):",
                capture.render(),
            ]
        )

    @staticmethod
    def _previous_step_lines(context: PromptContext) -> list[str]:
        if not context.previous_next_step:
            return []
        return [
            "The step planned during the previous iteration was:",
            f'"{context.previous_next_step}"',
            "",
        ]
