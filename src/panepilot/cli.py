"""Command-line interface for panepilot."""

from __future__ import annotations

import argparse
import logging
import signal
from pathlib import Path
from types import FrameType
from typing import cast

from .agent.ensemble import EnsembleSampler
from .agent.history import HistoryCompactor
from .agent.loop import MissionController
from .agent.models import RunOutcome
from .agent.prompts import PromptAssembler
from .agent.selector import CriticSelector
from .config import AppConfig
from .llm.client import CompletionClient
from .llm.review import EditorReview
from .pane import PaneBackend, PaneGeometry, create_pane_backend
from .transcript import TranscriptLog

LOGGER = logging.getLogger(__name__)

EXIT_INTERRUPTED = 130


class CLIArgs(argparse.Namespace):
    mission: str | None
    mission_file: str | None
    ensemble_size: int | None
    select_retries: int | None
    history_limit: int | None
    history_console_state: bool | None
    critic: bool | None
    apply_critic: bool | None
    apply_critic_see_choices: bool | None
    edit: float | str | None
    max_iterations: int | None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="panepilot",
        description="Mission-driven terminal pane pilot",
    )
    parser.add_argument("mission", nargs="?", help="Mission text for the session")
    parser.add_argument("-m", "--mission-file", dest="mission_file", help="Load the mission from a file")
    parser.add_argument(
        "-n",
        "--ensemble",
        dest="ensemble_size",
        type=int,
        help="Number of candidate responses sampled per iteration",
    )
    parser.add_argument(
        "-s",
        "--select-times",
        dest="select_retries",
        type=int,
        help="Extra attempts at picking a candidate before the iteration is dropped",
    )
    parser.add_argument(
        "-l",
        "--limit-history",
        dest="history_limit",
        type=int,
        help="History entries kept before they are condensed into a summary",
    )
    parser.add_argument(
        "-c",
        "--console-history",
        dest="history_console_state",
        action="store_true",
        default=None,
        help="Include the console state in every history entry",
    )
    parser.add_argument(
        "-r",
        "--review-critic",
        dest="critic",
        action="store_true",
        default=None,
        help="Have every candidate critiqued before selection",
    )
    parser.add_argument(
        "-a",
        "--apply-critic",
        dest="apply_critic",
        action="store_true",
        default=None,
        help="Let the model revise the selected candidate using the critique",
    )
    parser.add_argument(
        "-A",
        "--apply-critic-see-choices",
        dest="apply_critic_see_choices",
        action="store_true",
        default=None,
        help="Like --apply-critic, showing every candidate to the reviser",
    )
    parser.add_argument(
        "-e",
        "--edit",
        nargs="?",
        const="",
        type=_edit_seconds,
        metavar="SECONDS",
        help="Offer to edit each decoded response in $EDITOR, waiting SECONDS for a keypress",
    )
    parser.add_argument(
        "--max-iterations",
        dest="max_iterations",
        type=int,
        help="Stop after this many iterations (0 runs until the mission is complete)",
    )
    return parser


def _edit_seconds(value: str) -> float:
    try:
        seconds = float(value)
    except ValueError:
        msg = f"expected a number of seconds, got {value!r}"
        raise argparse.ArgumentTypeError(msg) from None
    if seconds < 0:
        msg = f"expected a non-negative number of seconds, got {value!r}"
        raise argparse.ArgumentTypeError(msg)
    return seconds


def apply_cli_overrides(config: AppConfig, args: CLIArgs) -> AppConfig:
    """Flags given on the command line take precedence over config/env values."""
    if args.mission_file is not None:
        config.mission_file = args.mission_file
    if args.ensemble_size is not None and args.ensemble_size > 0:
        config.ensemble_size = args.ensemble_size
    if args.select_retries is not None and args.select_retries >= 0:
        config.select_retries = args.select_retries
    if args.history_limit is not None and args.history_limit > 0:
        config.history_limit = args.history_limit
    if args.history_console_state:
        config.history_console_state = True
    if args.critic:
        config.critic_enabled = True
    if args.apply_critic or args.apply_critic_see_choices:
        config.critic_enabled = True
        config.apply_critic = True
    if args.apply_critic_see_choices:
        config.apply_critic_see_choices = True
    if args.edit is not None:
        config.edit_enabled = True
        if isinstance(args.edit, float):
            config.edit_timeout = args.edit
    if args.max_iterations is not None and args.max_iterations >= 0:
        config.max_iterations = args.max_iterations
    return config


def resolve_mission(args: CLIArgs, config: AppConfig) -> str | None:
    if args.mission and args.mission.strip():
        return args.mission.strip()
    if config.mission_file:
        return Path(config.mission_file).expanduser().read_text(encoding="utf-8").strip()
    if config.mission:
        return config.mission
    try:
        return input("Mission: ").strip()
    except (EOFError, KeyboardInterrupt):
        print()
        return None


def build_controller(config: AppConfig, pane: PaneBackend) -> MissionController:
    transcript = TranscriptLog(config.log_dir, session_name=getattr(pane, "session_name", None))
    review_hook = EditorReview(config.editor) if config.edit_enabled and config.editor else None
    client = CompletionClient(
        api_url=config.api_url,
        api_key=config.api_key,
        default_params=config.generation_params(),
        timeout=config.request_timeout,
        review_hook=review_hook,
        review_timeout=config.edit_timeout,
        transcript=transcript,
    )
    prompts = PromptAssembler()
    return MissionController(
        pane=pane,
        sampler=EnsembleSampler(client, size=config.ensemble_size),
        selector=CriticSelector(
            client,
            prompts,
            select_retries=config.select_retries,
            see_choices=config.apply_critic_see_choices,
        ),
        compactor=HistoryCompactor(client, prompts),
        prompts=prompts,
        geometry=PaneGeometry(columns=config.columns, rows=config.rows),
        history_limit=config.history_limit,
        history_console_state=config.history_console_state,
        critic_enabled=config.critic_enabled,
        apply_critic=config.apply_critic,
        settle_seconds=config.settle_seconds,
        max_iterations=config.max_iterations,
    )


def main() -> int:
    parser = build_parser()
    args = cast(CLIArgs, parser.parse_args())
    config = apply_cli_overrides(AppConfig.from_env(), args)
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        mission = resolve_mission(args, config)
    except OSError as exc:
        print(f"Unable to read mission file: {exc}")
        return 1
    if not mission:
        print("No mission provided.")
        return 1

    if config.edit_enabled and not config.editor:
        print("Response editing requested but no editor is configured; set $EDITOR.")

    pane = create_pane_backend(
        config.pane_backend,
        session_prefix=config.session_prefix,
        key_delay=config.key_delay,
        unknown_key_policy=config.unknown_key_policy,
    )
    controller = build_controller(config, pane)
    signal.signal(signal.SIGTERM, _raise_keyboard_interrupt)

    outcome = controller.run(mission)
    print(_render_outcome(outcome))
    return _exit_code(outcome)


def _raise_keyboard_interrupt(_signum: int, _frame: FrameType | None) -> None:
    raise KeyboardInterrupt


def _exit_code(outcome: RunOutcome) -> int:
    if outcome.interrupted:
        return EXIT_INTERRUPTED
    if outcome.status == "aborted":
        return 1
    return 0


def _render_outcome(outcome: RunOutcome) -> str:
    lines = [f"=== Mission {outcome.status} after {outcome.iterations} iteration(s) ==="]
    if outcome.interrupted:
        lines.append("Interrupted. The pane session was cleaned up.")
    if outcome.error:
        lines.append("[error]")
        lines.append(outcome.error)
    if outcome.final_response is not None:
        lines.append("[last plan]")
        lines.append(outcome.final_response.planning_note or "(none)")
    return "\n".join(lines)


if __name__ == "__main__":
    raise SystemExit(main())
