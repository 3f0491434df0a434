from __future__ import annotations

import json

from panepilot.llm.decoder import UNMATCHED_BRACES, CompletionResult, StreamDecoder


def _frame(content: str) -> str:
    return "data: " + json.dumps({"content": content})


def test_decoder_emits_object_across_two_frames_without_reading_further() -> None:
    consumed: list[str] = []

    def lines():
        for line in [_frame('{"a"'), _frame(":1}"), _frame("ignored trailing text")]:
            consumed.append(line)
            yield line

    result = StreamDecoder().decode(lines())

    assert result.json_text == '{"a":1}'
    assert result.as_object() == {"a": 1}
    assert len(consumed) == 2


def test_decoder_result_is_invariant_to_chunk_boundaries() -> None:
    stream = 'Sure, here it is:\n```json\n{"reasoning": "list {files}", "keys": ["l", "s"], "n": {"x": 1}}\n```'
    expected = '{"reasoning": "list {files}", "keys": ["l", "s"], "n": {"x": 1}}'

    for split in range(1, len(stream)):
        pieces = [stream[:split], stream[split:]]
        assert StreamDecoder().decode_content(pieces).json_text == expected
    for size in (1, 2, 3, 7):
        pieces = [stream[i : i + size] for i in range(0, len(stream), size)]
        assert StreamDecoder().decode_content(pieces).json_text == expected


def test_decoder_discards_text_before_first_brace() -> None:
    result = StreamDecoder().decode_content(["Here you go } ", "```json\n", '{"ok": true}'])

    assert result.json_text == '{"ok": true}'


def test_decoder_ignores_braces_inside_strings() -> None:
    result = StreamDecoder().decode_content(['{"text": "a } b \\" { c"}', " tail"])

    assert result.as_object() == {"text": 'a } b " { c'}


def test_decoder_stops_at_marker_and_returns_plain_text() -> None:
    consumed: list[str] = []

    def pieces():
        for piece in ["- step one\n- step ", "two\nEND_SUM", "MARY", "more text"]:
            consumed.append(piece)
            yield piece

    result = StreamDecoder(stop_at="END_SUMMARY").decode_content(pieces())

    assert result.stopped_at_marker is True
    assert result.json_text is None
    assert result.text == "- step one\n- step two\nEND_SUMMARY"
    assert result.text_before("END_SUMMARY") == "- step one\n- step two"
    assert len(consumed) == 3


def test_decoder_reports_unmatched_braces_at_end_of_stream() -> None:
    result = StreamDecoder().decode_content(['{"a": {"b": 1}'])

    assert result.json_text is None
    assert result.error == UNMATCHED_BRACES
    assert result.text == '{"a": {"b": 1}'


def test_decoder_returns_plain_text_when_no_object_arrives() -> None:
    result = StreamDecoder().decode([_frame("The best response "), _frame("is 2")])

    assert result.ok
    assert result.json_text is None
    assert result.text == "The best response is 2"


def test_decoder_skips_unparseable_frames_and_blank_lines() -> None:
    lines = [
        b"",
        b"data: {not json",
        _frame('{"k":').encode("utf-8"),
        ": keep-alive comment",
        _frame('"v"}'),
    ]

    result = StreamDecoder().decode(lines)

    assert result.as_object() == {"k": "v"}


def test_decoder_reads_openai_style_choice_frames_and_done_sentinel() -> None:
    lines = [
        "data: " + json.dumps({"choices": [{"text": '{"x": '}]}),
        "data: " + json.dumps({"choices": [{"delta": {"content": "2"}}]}),
        "data: [DONE]",
        "data: " + json.dumps({"choices": [{"text": "}"}]}),
    ]

    result = StreamDecoder().decode(lines)

    assert result.json_text is None
    assert result.text == '{"x": 2'
    assert result.error == UNMATCHED_BRACES


def test_interrupted_keeps_partial_text() -> None:
    decoder = StreamDecoder()
    assert decoder.feed('{"partial": ') is None

    result = decoder.interrupted("connection reset")

    assert result.text == '{"partial": '
    assert result.error == "connection reset"
    assert result.ok is False


def test_as_object_rejects_non_object_json() -> None:
    assert CompletionResult(text="", json_text="{bad json}").as_object() is None
    assert CompletionResult(text="[1]", json_text=None).as_object() is None


def test_free_text_mode_reads_past_braces_until_marker() -> None:
    summary = "- ran awk '{print $1}' on the log\n- next: check ${HOME}/build\nEND_SUMMARY"

    result = StreamDecoder(stop_at="END_SUMMARY", expect_json=False).decode_content(
        [summary, "\n- never read"]
    )

    assert result.stopped_at_marker is True
    assert result.json_text is None
    assert result.text_before("END_SUMMARY") == (
        "- ran awk '{print $1}' on the log\n- next: check ${HOME}/build"
    )


def test_free_text_mode_ignores_unbalanced_braces_at_end_of_stream() -> None:
    result = StreamDecoder(stop_at="END_EVALUATION", expect_json=False).decode(
        [_frame("Typing {x} then Enter is fine, "), _frame("but the cd is missing { oops")]
    )

    assert result.ok
    assert result.stopped_at_marker is False
    assert result.text == "Typing {x} then Enter is fine, but the cd is missing { oops"
