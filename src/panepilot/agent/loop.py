"""Mission loop: capture, sample, select, type, record, condense."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from panepilot.agent.ensemble import EnsembleSampler
from panepilot.agent.history import HistoryCompactor, HistoryLog
from panepilot.agent.models import (
    CandidateResponse,
    IterationRecord,
    RunOutcome,
    RunState,
    Selection,
)
from panepilot.agent.prompts import PromptAssembler, PromptContext
from panepilot.agent.selector import CriticSelector
from panepilot.pane import PaneBackend, PaneError, PaneGeometry, UnknownKeyError

LOGGER = logging.getLogger(__name__)


class MissionController:
    """Drives one pane session until the model reports the mission complete.

    Each iteration captures the pane, samples an ensemble of candidate actions,
    optionally critiques them, lets the model pick one (and optionally revise
    it), types the chosen keys and appends the result to the history. Failed
    sampling or selection rounds leave no trace and the next iteration starts
    from a fresh capture. The pane session is torn down on every exit path.
    """

    def __init__(
        self,
        *,
        pane: PaneBackend,
        sampler: EnsembleSampler,
        selector: CriticSelector,
        compactor: HistoryCompactor,
        prompts: PromptAssembler | None = None,
        geometry: PaneGeometry | None = None,
        history_limit: int = 5,
        history_console_state: bool = False,
        critic_enabled: bool = False,
        apply_critic: bool = False,
        settle_seconds: float = 2.0,
        max_iterations: int = 0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.pane = pane
        self.sampler = sampler
        self.selector = selector
        self.compactor = compactor
        self.prompts = prompts or PromptAssembler()
        self.geometry = geometry or PaneGeometry()
        self.history_limit = max(history_limit, 1)
        self.history_console_state = history_console_state
        self.critic_enabled = critic_enabled or apply_critic
        self.apply_critic = apply_critic
        self.settle_seconds = settle_seconds
        self.max_iterations = max_iterations
        self.sleep = sleep

    def run(self, mission: str) -> RunOutcome:
        state = RunState()
        history = HistoryLog(include_console_state=self.history_console_state)
        final_response: CandidateResponse | None = None
        LOGGER.info("mission_started", extra={"backend": self.pane.name})

        try:
            with self.pane.session(self.geometry):
                while not state.mission_complete:
                    if self.max_iterations and state.iteration >= self.max_iterations:
                        LOGGER.warning(
                            "iteration_budget_exhausted",
                            extra={"max_iterations": self.max_iterations},
                        )
                        return RunOutcome(
                            status="exhausted",
                            iterations=state.iteration,
                            final_response=final_response,
                        )
                    state.iteration += 1
                    response = self._run_iteration(mission, state, history)
                    if response is not None:
                        final_response = response
        except KeyboardInterrupt:
            state.interrupted = True
            LOGGER.warning("mission_interrupted", extra={"iteration": state.iteration})
            return RunOutcome(
                status="aborted",
                iterations=state.iteration,
                interrupted=True,
                final_response=final_response,
            )
        except PaneError as exc:
            LOGGER.error(
                "mission_aborted",
                extra={"iteration": state.iteration, "error": str(exc)},
            )
            return RunOutcome(
                status="aborted",
                iterations=state.iteration,
                error=str(exc),
                final_response=final_response,
            )

        LOGGER.info("mission_complete", extra={"iterations": state.iteration})
        return RunOutcome(
            status="complete",
            iterations=state.iteration,
            final_response=final_response,
        )

    def _run_iteration(
        self, mission: str, state: RunState, history: HistoryLog
    ) -> CandidateResponse | None:
        capture = self.pane.capture()
        context = PromptContext(
            mission=mission,
            capture=capture,
            previous_next_step=state.previous_next_step,
        )
        steps_left = max(self.history_limit - history.entry_count, 0)
        prompt = self.prompts.main(context, history.render(), steps_left)
        LOGGER.info(
            "iteration_started",
            extra={"iteration": state.iteration, "history_entries": history.entry_count},
        )

        pool = self.sampler.sample(prompt)
        if not pool:
            LOGGER.warning("iteration_empty_pool", extra={"iteration": state.iteration})
            return None
        if self.critic_enabled:
            pool = self.selector.critique(pool, context)

        selection: Selection | None
        if self.sampler.size > 1:
            selection = self.selector.select(pool, context, include_critique=self.critic_enabled)
        else:
            selection = Selection(index=1, candidate=pool[0])
        if selection is None:
            LOGGER.warning("iteration_selection_failed", extra={"iteration": state.iteration})
            return None

        response = selection.candidate
        if self.apply_critic:
            response = self.selector.apply_critic(selection, pool, context)

        if response.keypresses:
            try:
                self.pane.send(response.keypresses)
            except UnknownKeyError as exc:
                LOGGER.warning(
                    "iteration_keys_rejected",
                    extra={"iteration": state.iteration, "token": exc.token},
                )
                return None
            self.sleep(self.settle_seconds)

        history.append(IterationRecord(cursor=capture.cursor, screen=capture, response=response))
        state.previous_next_step = response.next_step_note
        state.mission_complete = response.mission_complete

        if history.needs_compaction(self.history_limit):
            self.compactor.compact(history, mission, self.pane.capture())
        return response
