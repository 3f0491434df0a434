"""Environment-backed application configuration."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

from panepilot.llm.client import DEFAULT_API_URL

UNKNOWN_KEY_POLICIES = {"literal", "reject"}


def _to_bool(value: str | None, default: bool = False) -> bool:
    """Convert common env var truthy/falsy values into booleans."""
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


@dataclass(slots=True)
class AppConfig:
    """Runtime settings loaded from environment variables and config files."""

    api_url: str
    api_key: str | None
    n_predict: int
    temperature: float
    request_timeout: float | None
    log_dir: str
    log_level: str
    mission: str | None
    mission_file: str | None
    pane_backend: str
    session_prefix: str
    columns: int
    rows: int
    key_delay: float
    settle_seconds: float
    unknown_key_policy: str
    ensemble_size: int
    select_retries: int
    critic_enabled: bool
    apply_critic: bool
    apply_critic_see_choices: bool
    history_limit: int
    history_console_state: bool
    edit_enabled: bool
    edit_timeout: float
    editor: str | None
    max_iterations: int

    @classmethod
    def from_env(cls) -> AppConfig:
        file_config = _load_preferred_file_config()
        completion_config = _section(file_config, "completion")
        pane_config = _section(file_config, "pane")

        see_choices = _to_bool(
            os.getenv("PANEPILOT_APPLY_CRITIC_SEE_CHOICES"),
            default=bool(file_config.get("apply_critic_see_choices", False)),
        )
        apply_critic = see_choices or _to_bool(
            os.getenv("PANEPILOT_APPLY_CRITIC"),
            default=bool(file_config.get("apply_critic", False)),
        )
        critic_enabled = apply_critic or _to_bool(
            os.getenv("PANEPILOT_CRITIC"),
            default=bool(file_config.get("critic", False)),
        )

        return cls(
            api_url=(
                os.getenv("PANEPILOT_API_URL")
                or _to_optional_string(completion_config.get("api_url"))
                or DEFAULT_API_URL
            ),
            api_key=(
                os.getenv("PANEPILOT_API_KEY")
                or _to_optional_string(completion_config.get("api_key"))
                or _to_optional_string(file_config.get("api_key"))
            ),
            n_predict=_to_positive_int(
                os.getenv("PANEPILOT_N_PREDICT") or completion_config.get("n_predict"),
                default=384,
            ),
            temperature=_to_float(
                os.getenv("PANEPILOT_TEMPERATURE") or completion_config.get("temperature"),
                default=0.6,
            ),
            request_timeout=_to_optional_positive_float(
                os.getenv("PANEPILOT_REQUEST_TIMEOUT")
                or completion_config.get("request_timeout")
            ),
            log_dir=(
                os.getenv("PANEPILOT_LOG_DIR")
                or _to_optional_string(file_config.get("log_dir"))
                or "logs"
            ),
            log_level=(
                os.getenv("PANEPILOT_LOG_LEVEL")
                or _to_optional_string(file_config.get("log_level"))
                or "INFO"
            ).upper(),
            mission=(
                os.getenv("PANEPILOT_MISSION")
                or _to_optional_string(file_config.get("mission"))
            ),
            mission_file=(
                os.getenv("PANEPILOT_MISSION_FILE")
                or _to_optional_string(file_config.get("mission_file"))
            ),
            pane_backend=(
                os.getenv("PANEPILOT_PANE_BACKEND")
                or _to_optional_string(pane_config.get("backend"))
                or "tmux"
            ),
            session_prefix=(
                os.getenv("PANEPILOT_SESSION_PREFIX")
                or _to_optional_string(pane_config.get("session_prefix"))
                or "panepilot"
            ),
            columns=_to_positive_int(
                os.getenv("PANEPILOT_COLUMNS") or pane_config.get("columns"),
                default=80,
            ),
            rows=_to_positive_int(
                os.getenv("PANEPILOT_ROWS") or pane_config.get("rows"),
                default=24,
            ),
            key_delay=_to_float(
                os.getenv("PANEPILOT_KEY_DELAY") or pane_config.get("key_delay"),
                default=0.05,
            ),
            settle_seconds=_to_float(
                os.getenv("PANEPILOT_SETTLE_SECONDS") or pane_config.get("settle_seconds"),
                default=2.0,
            ),
            unknown_key_policy=_resolve_unknown_key_policy(
                os.getenv("PANEPILOT_UNKNOWN_KEY_POLICY")
                or _to_optional_string(pane_config.get("unknown_key_policy"))
            ),
            ensemble_size=_to_positive_int(
                os.getenv("PANEPILOT_ENSEMBLE_SIZE") or file_config.get("ensemble_size"),
                default=1,
            ),
            select_retries=_to_non_negative_int(
                os.getenv("PANEPILOT_SELECT_RETRIES") or file_config.get("select_retries"),
                default=1,
            ),
            critic_enabled=critic_enabled,
            apply_critic=apply_critic,
            apply_critic_see_choices=see_choices,
            history_limit=_to_positive_int(
                os.getenv("PANEPILOT_HISTORY_LIMIT") or file_config.get("history_limit"),
                default=5,
            ),
            history_console_state=_to_bool(
                os.getenv("PANEPILOT_HISTORY_CONSOLE_STATE"),
                default=bool(file_config.get("history_console_state", False)),
            ),
            edit_enabled=_to_bool(
                os.getenv("PANEPILOT_EDIT"),
                default=bool(file_config.get("edit", False)),
            ),
            edit_timeout=_to_float(
                os.getenv("PANEPILOT_EDIT_TIMEOUT") or file_config.get("edit_timeout"),
                default=5.0,
            ),
            editor=(
                os.getenv("EDITOR")
                or _to_optional_string(file_config.get("editor"))
            ),
            max_iterations=_to_non_negative_int(
                os.getenv("PANEPILOT_MAX_ITERATIONS") or file_config.get("max_iterations"),
                default=0,
            ),
        )

    def generation_params(self) -> dict[str, object]:
        return {"n_predict": self.n_predict, "temperature": self.temperature}


def _section(config: dict[str, object], key: str) -> dict[str, object]:
    value = config.get(key)
    return value if isinstance(value, dict) else {}


def _to_optional_string(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _load_file_config(path_value: str) -> dict[str, object]:
    path = Path(path_value)
    if not path.exists() or not path.is_file():
        return {}
    try:
        with path.open("r", encoding="utf-8") as fh:
            parsed = json.load(fh)
    except (OSError, json.JSONDecodeError):
        return {}
    if isinstance(parsed, dict):
        return parsed
    return {}


def _load_preferred_file_config() -> dict[str, object]:
    explicit_path = os.getenv("PANEPILOT_CONFIG_FILE")
    if explicit_path:
        return _load_file_config(explicit_path)

    shared_config = _load_file_config("panepilot.config.json")
    local_override = _load_file_config("panepilot.config.local.json")
    return _merge_dicts(shared_config, local_override)


def _merge_dicts(base: dict[str, object], override: dict[str, object]) -> dict[str, object]:
    merged: dict[str, object] = dict(base)
    for key, value in override.items():
        base_value = merged.get(key)
        if isinstance(base_value, dict) and isinstance(value, dict):
            merged[key] = _merge_dicts(base_value, value)
        else:
            merged[key] = value
    return merged


def _resolve_unknown_key_policy(value: str | None) -> str:
    if value is None:
        return "literal"
    normalized = value.strip().lower()
    return normalized if normalized in UNKNOWN_KEY_POLICIES else "literal"


def _to_int(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _to_positive_int(value: object, *, default: int) -> int:
    parsed = _to_int(value)
    return parsed if parsed is not None and parsed > 0 else default


def _to_non_negative_int(value: object, *, default: int) -> int:
    parsed = _to_int(value)
    return parsed if parsed is not None and parsed >= 0 else default


def _to_float(value: object, *, default: float) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return default
    return default


def _to_optional_positive_float(value: object) -> float | None:
    parsed = _to_float(value, default=0.0)
    return parsed if parsed > 0 else None
