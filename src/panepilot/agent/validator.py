"""Schema check for decoded candidate responses."""

from __future__ import annotations

import logging

from panepilot.agent.models import CandidateResponse

LOGGER = logging.getLogger(__name__)

# Accepted wire names for the two note slots, in lookup order.
PLAN_KEYS = ("branch_map", "scratchpad", "plan")
NEXT_STEP_KEYS = ("next_move", "next_step")
REQUIRED_KEYS = ("reasoning", "keypresses", "mission_complete")


def validate_candidate(value: object) -> CandidateResponse | None:
    """Return a candidate when ``value`` satisfies the response contract."""
    if not isinstance(value, dict):
        return None
    missing = [key for key in REQUIRED_KEYS if key not in value]
    plan_key = _first_present(value, PLAN_KEYS)
    next_key = _first_present(value, NEXT_STEP_KEYS)
    if plan_key is None:
        missing.append(PLAN_KEYS[0])
    if next_key is None:
        missing.append(NEXT_STEP_KEYS[0])
    if missing:
        LOGGER.warning("candidate_missing_fields", extra={"missing": ",".join(missing)})
        return None

    keypresses = value["keypresses"]
    if not isinstance(keypresses, list) or not all(isinstance(key, str) for key in keypresses):
        LOGGER.warning("candidate_invalid_keypresses", extra={"type": type(keypresses).__name__})
        return None
    mission_complete = value["mission_complete"]
    if not isinstance(mission_complete, bool):
        LOGGER.warning(
            "candidate_invalid_mission_complete",
            extra={"type": type(mission_complete).__name__},
        )
        return None

    critique = value.get("critic_evaluation")
    return CandidateResponse(
        reasoning=_text(value["reasoning"]),
        mission_complete=mission_complete,
        keypresses=tuple(keypresses),
        planning_note=_text(value[plan_key]),
        next_step_note=_text(value[next_key]),
        critic_evaluation=critique if isinstance(critique, str) else None,
    )


def _first_present(value: dict[str, object], keys: tuple[str, ...]) -> str | None:
    for key in keys:
        if key in value:
            return key
    return None


def _text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(value)
