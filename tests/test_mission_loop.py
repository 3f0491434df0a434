from __future__ import annotations

import json
from collections.abc import Sequence

from panepilot.agent.ensemble import EnsembleSampler
from panepilot.agent.history import HistoryCompactor
from panepilot.agent.loop import MissionController
from panepilot.agent.prompts import END_SUMMARY, NO_CHANGE, PromptAssembler
from panepilot.agent.selector import CriticSelector
from panepilot.llm.decoder import CompletionResult
from panepilot.pane import (
    CaptureError,
    CursorPosition,
    PaneBackend,
    PaneGeometry,
    ScreenCapture,
    UnknownKeyError,
)
from panepilot.pane.base import build_capture


class FakePane(PaneBackend):
    def __init__(self, *, send_errors: list[BaseException | None] | None = None) -> None:
        super().__init__(key_delay=0)
        self.send_errors = list(send_errors or [])
        self.sent: list[tuple[str, ...]] = []
        self.captures = 0
        self.created_with: PaneGeometry | None = None
        self.destroyed = 0
        self.capture_error: Exception | None = None

    @property
    def name(self) -> str:
        return "fake"

    def create(self, geometry: PaneGeometry) -> None:
        self.created_with = geometry

    def send(self, sequence: Sequence[str]) -> None:
        if self.send_errors:
            error = self.send_errors.pop(0)
            if error is not None:
                raise error
        self.sent.append(tuple(sequence))

    def capture(self) -> ScreenCapture:
        if self.capture_error is not None:
            raise self.capture_error
        self.captures += 1
        return build_capture(
            f"screen {self.captures}\n$ ", CursorPosition(x=2, y=1), PaneGeometry()
        )

    def destroy(self) -> None:
        self.destroyed += 1


class FakeClient:
    """Answers each request kind from its own scripted queue."""

    def __init__(self, **scripts: list[CompletionResult]) -> None:
        self.scripts = {kind: list(results) for kind, results in scripts.items()}
        self.calls: list[tuple[str, str]] = []
        self.expect_json: dict[str, bool] = {}

    def complete(self, prompt, params=None, *, stop_at=None, kind="completion", expect_json=True):
        self.calls.append((kind, prompt))
        self.expect_json[kind] = expect_json
        if kind == "summary":
            return CompletionResult(text=f"- summary {self.count('summary')}\n{END_SUMMARY}")
        return self.scripts[kind].pop(0)

    def count(self, kind: str) -> int:
        return sum(1 for call_kind, _ in self.calls if call_kind == kind)

    def prompts(self, kind: str) -> list[str]:
        return [prompt for call_kind, prompt in self.calls if call_kind == kind]


def _reply(keys: list[str], *, complete: bool = False, plan: str = "plan") -> CompletionResult:
    payload = json.dumps(
        {
            "reasoning": "because",
            "mission_complete": complete,
            "branch_map": plan,
            "keypresses": keys,
            "next_move": f"after {''.join(keys)}",
        }
    )
    return CompletionResult(text=payload, json_text=payload)


def _controller(
    client: FakeClient,
    pane: FakePane,
    *,
    ensemble: int = 1,
    sleeps: list[float] | None = None,
    **kwargs: object,
) -> MissionController:
    prompts = PromptAssembler()
    recorded = sleeps if sleeps is not None else []
    return MissionController(
        pane=pane,
        sampler=EnsembleSampler(client, size=ensemble),
        selector=CriticSelector(client, prompts, select_retries=1),
        compactor=HistoryCompactor(client, prompts),
        prompts=prompts,
        sleep=recorded.append,
        **kwargs,
    )


def test_mission_runs_until_complete() -> None:
    client = FakeClient(sample=[_reply(["l", "s", "Enter"]), _reply([], complete=True, plan="done")])
    pane = FakePane()
    sleeps: list[float] = []

    outcome = _controller(client, pane, sleeps=sleeps).run("list the files")

    assert outcome.status == "complete"
    assert outcome.iterations == 2
    assert outcome.final_response is not None
    assert outcome.final_response.planning_note == "done"
    assert pane.sent == [("l", "s", "Enter")]
    assert sleeps == [2.0]
    assert pane.created_with == PaneGeometry(columns=80, rows=24)
    assert pane.destroyed == 1
    second_prompt = client.prompts("sample")[1]
    assert '"after lsEnter"' in second_prompt
    assert "screen 2" in second_prompt


def test_empty_pool_leaves_no_trace() -> None:
    client = FakeClient(
        sample=[CompletionResult(text="I cannot answer that."), _reply(["C-c"], complete=True)]
    )
    pane = FakePane()

    outcome = _controller(client, pane).run("stop the process")

    assert outcome.status == "complete"
    assert outcome.iterations == 2
    assert pane.sent == [("C-c",)]
    assert '"keypresses"' not in client.prompts("sample")[1].split("HISTORY SNIPPET:")[1].split("=====")[0]


def test_failed_selection_skips_iteration() -> None:
    client = FakeClient(
        sample=[
            _reply(["a"]),
            _reply(["b"]),
            _reply(["c"], complete=True),
            _reply(["d"], complete=True),
        ],
        select=[
            CompletionResult(text="no idea"),
            CompletionResult(text="42"),
            CompletionResult(text="2"),
        ],
    )
    pane = FakePane()

    outcome = _controller(client, pane, ensemble=2).run("type a letter")

    assert outcome.status == "complete"
    assert outcome.iterations == 2
    assert pane.sent == [("d",)]


def test_history_is_condensed_before_sixth_capture() -> None:
    client = FakeClient(sample=[_reply(["x"]) for _ in range(5)] + [_reply([], complete=True)])
    pane = FakePane()

    outcome = _controller(client, pane, history_limit=5).run("keep typing")

    assert outcome.iterations == 6
    assert client.count("summary") == 1
    sample_prompts = client.prompts("sample")
    assert "You have 5 iteration steps left" in sample_prompts[0]
    assert "You have 1 iteration steps left" in sample_prompts[4]
    assert "You have 5 iteration steps left" in sample_prompts[5]
    assert "An older summary:\n- summary 1" in sample_prompts[5]
    summary_prompt = client.prompts("summary")[0]
    assert "screen 6" in summary_prompt
    assert pane.captures == 7


def test_interrupt_aborts_and_destroys_session() -> None:
    client = FakeClient(sample=[_reply(["s", "l", "e", "e", "p"])])
    pane = FakePane(send_errors=[KeyboardInterrupt()])

    outcome = _controller(client, pane).run("wait")

    assert outcome.status == "aborted"
    assert outcome.interrupted is True
    assert outcome.iterations == 1
    assert pane.destroyed == 1


def test_pane_failure_aborts_with_error() -> None:
    pane = FakePane()
    pane.capture_error = CaptureError("tmux capture-pane failed: no server")

    outcome = _controller(FakeClient(), pane).run("anything")

    assert outcome.status == "aborted"
    assert outcome.interrupted is False
    assert "no server" in (outcome.error or "")
    assert pane.destroyed == 1


def test_iteration_budget_exhausts() -> None:
    client = FakeClient(sample=[_reply(["x"]) for _ in range(3)])
    pane = FakePane()

    outcome = _controller(client, pane, max_iterations=3).run("never finishes")

    assert outcome.status == "exhausted"
    assert outcome.iterations == 3
    assert len(pane.sent) == 3
    assert pane.destroyed == 1


def test_rejected_keys_drop_the_iteration() -> None:
    client = FakeClient(sample=[_reply(["Hyper+x"]), _reply(["q"], complete=True)])
    pane = FakePane(send_errors=[UnknownKeyError("Hyper+x"), None])

    outcome = _controller(client, pane).run("quit")

    assert outcome.status == "complete"
    assert outcome.iterations == 2
    assert pane.sent == [("q",)]
    assert "Hyper+x" not in client.prompts("sample")[1].split("MISSION:")[0]


def test_critic_and_apply_critic_shape_the_action() -> None:
    client = FakeClient(
        sample=[_reply(["l", "s"]), _reply(["d", "i", "r"])],
        critique=[
            CompletionResult(text="Enter is missing END_EVALUATION", stopped_at_marker=True),
            CompletionResult(text="dir is not a Linux command END_EVALUATION"),
        ],
        select=[CompletionResult(text="1")],
        apply_critic=[_reply(["l", "s", "Enter"], complete=True)],
    )
    pane = FakePane()

    outcome = _controller(client, pane, ensemble=2, apply_critic=True).run("list files")

    assert outcome.status == "complete"
    assert pane.sent == [("l", "s", "Enter")]
    assert outcome.final_response is not None
    assert outcome.final_response.critic_evaluation == "Enter is missing"
    select_prompt = client.prompts("select")[0]
    assert "evaluation from an external critic: Enter is missing" in select_prompt


def test_apply_critic_no_change_keeps_selection() -> None:
    client = FakeClient(
        sample=[_reply(["l", "s", "Enter"], complete=True)],
        critique=[CompletionResult(text="fine END_EVALUATION", stopped_at_marker=True)],
        apply_critic=[CompletionResult(text=NO_CHANGE, stopped_at_marker=True)],
    )
    pane = FakePane()

    outcome = _controller(client, pane, apply_critic=True).run("list files")

    assert outcome.status == "complete"
    assert pane.sent == [("l", "s", "Enter")]
    assert client.count("select") == 0


def test_malformed_candidate_shrinks_pool_before_selection() -> None:
    client = FakeClient(
        sample=[
            _reply(["p", "w", "d"], plan="first valid"),
            CompletionResult(text='{"reasoning": "no keys"}', json_text='{"reasoning": "no keys"}'),
            _reply(["l", "s"], complete=True, plan="second valid"),
        ],
        select=[CompletionResult(text="2")],
    )
    pane = FakePane()

    outcome = _controller(client, pane, ensemble=3).run("look around")

    assert outcome.status == "complete"
    assert pane.sent == [("l", "s")]
    select_prompt = client.prompts("select")[0]
    assert "Response #1" in select_prompt
    assert "Response #2" in select_prompt
    assert "Response #3" not in select_prompt
    assert "Response 1 keypresses: ['p', 'w', 'd']" in select_prompt
    assert "Response 2 keypresses: ['l', 's']" in select_prompt
    assert client.expect_json == {"sample": True, "select": False}
