"""Critique, selection and critic-merge stages for an ensemble pool."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence

from panepilot.agent.ensemble import CompletionSource
from panepilot.agent.models import CandidateResponse, Selection
from panepilot.agent.prompts import (
    END_EVALUATION,
    END_SELECT,
    NO_CHANGE,
    PromptAssembler,
    PromptContext,
)
from panepilot.agent.validator import validate_candidate

LOGGER = logging.getLogger(__name__)

CRITIC_PARAMS: dict[str, object] = {"n_predict": 256, "temperature": 0.8}
SELECT_PARAMS: dict[str, object] = {"n_predict": 10, "temperature": 0.3}
APPLY_CRITIC_PARAMS: dict[str, object] = {"temperature": 0.3}

_FIRST_NUMBER = re.compile(r"\d+")


def parse_selection(reply: str, pool_size: int) -> int | None:
    """Return the first integer in ``reply`` when it is a valid 1-based index."""
    match = _FIRST_NUMBER.search(reply)
    if match is None:
        return None
    number = int(match.group())
    if 1 <= number <= pool_size:
        return number
    return None


class CriticSelector:
    """Lets the model critique candidates, vote for one and optionally revise it."""

    def __init__(
        self,
        client: CompletionSource,
        prompts: PromptAssembler,
        *,
        select_retries: int = 1,
        critic_max_chars: int = 390,
        see_choices: bool = False,
    ) -> None:
        self.client = client
        self.prompts = prompts
        self.select_retries = max(select_retries, 0)
        self.critic_max_chars = critic_max_chars
        self.see_choices = see_choices

    def critique(
        self, pool: Sequence[CandidateResponse], context: PromptContext
    ) -> list[CandidateResponse]:
        critiqued: list[CandidateResponse] = []
        for candidate in pool:
            prompt = self.prompts.critic(candidate, context, self.critic_max_chars)
            result = self.client.complete(
                prompt,
                CRITIC_PARAMS,
                stop_at=END_EVALUATION,
                kind="critique",
                expect_json=False,
            )
            evaluation = result.text_before(END_EVALUATION)[: self.critic_max_chars]
            critiqued.append(candidate.with_critique(evaluation))
        return critiqued

    def select(
        self,
        pool: Sequence[CandidateResponse],
        context: PromptContext,
        *,
        include_critique: bool = False,
    ) -> Selection | None:
        """Return the model's pick, or ``None`` once the retry bound is exceeded."""
        if not pool:
            return None
        if len(pool) == 1:
            return Selection(index=1, candidate=pool[0])

        prompt = self.prompts.select(pool, context, include_critique=include_critique)
        attempts = self.select_retries + 1
        for attempt in range(1, attempts + 1):
            result = self.client.complete(
                prompt, SELECT_PARAMS, stop_at=END_SELECT, kind="select", expect_json=False
            )
            number = parse_selection(result.text_before(END_SELECT), len(pool))
            if number is not None:
                LOGGER.info(
                    "candidate_selected",
                    extra={"index": number, "pool_size": len(pool), "attempt": attempt},
                )
                return Selection(index=number, candidate=pool[number - 1])
            LOGGER.warning(
                "selection_reply_invalid",
                extra={"reply": result.text[:80], "attempt": attempt, "pool_size": len(pool)},
            )

        LOGGER.warning("selection_exhausted", extra={"attempts": attempts})
        return None

    def apply_critic(
        self,
        selection: Selection,
        pool: Sequence[CandidateResponse],
        context: PromptContext,
    ) -> CandidateResponse:
        if self.see_choices:
            shown, number = list(pool), selection.index
        else:
            shown, number = [selection.candidate], 1

        prompt = self.prompts.apply_critic(shown, number, context)
        result = self.client.complete(
            prompt, APPLY_CRITIC_PARAMS, stop_at=NO_CHANGE, kind="apply_critic"
        )
        if result.stopped_at_marker or (result.json_text is None and NO_CHANGE in result.text):
            LOGGER.info("apply_critic_no_change", extra={"index": selection.index})
            return selection.candidate

        revised = validate_candidate(result.as_object())
        if revised is None:
            LOGGER.warning(
                "apply_critic_malformed_reply",
                extra={"reply": result.text[:200], "error": result.error},
            )
            return selection.candidate

        LOGGER.info("apply_critic_revised", extra={"index": selection.index})
        if revised.critic_evaluation is None and selection.candidate.critic_evaluation:
            return revised.with_critique(selection.candidate.critic_evaluation)
        return revised
