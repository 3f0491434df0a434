"""Independent sampling of candidate actions for one iteration."""

from __future__ import annotations

import logging
from typing import Protocol

from panepilot.agent.models import CandidateResponse
from panepilot.agent.validator import validate_candidate
from panepilot.llm.decoder import CompletionResult

LOGGER = logging.getLogger(__name__)


class CompletionSource(Protocol):
    def complete(
        self,
        prompt: str,
        params: dict[str, object] | None = None,
        *,
        stop_at: str | None = None,
        kind: str = "completion",
        expect_json: bool = True,
    ) -> CompletionResult: ...


class EnsembleSampler:
    """Requests ``size`` candidates and keeps the ones that validate."""

    def __init__(
        self,
        client: CompletionSource,
        *,
        size: int = 1,
        params: dict[str, object] | None = None,
    ) -> None:
        if size < 1:
            msg = f"Ensemble size must be at least 1, got {size}"
            raise ValueError(msg)
        self.client = client
        self.size = size
        self.params = params

    def sample(self, prompt: str) -> list[CandidateResponse]:
        pool: list[CandidateResponse] = []
        for attempt in range(1, self.size + 1):
            result = self.client.complete(prompt, self.params, kind="sample")
            candidate = validate_candidate(result.as_object())
            if candidate is None:
                LOGGER.warning(
                    "candidate_discarded",
                    extra={
                        "attempt": attempt,
                        "ensemble_size": self.size,
                        "decoded_object": result.json_text is not None,
                        "error": result.error,
                    },
                )
                continue
            pool.append(candidate)

        LOGGER.info(
            "ensemble_sampled",
            extra={"ensemble_size": self.size, "pool_size": len(pool)},
        )
        return pool
