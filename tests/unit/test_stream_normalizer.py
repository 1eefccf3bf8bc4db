import asyncio
import json

import pytest

from assistant_gateway.streaming.events import ActionEvent, DeltaEvent, DoneEvent
from assistant_gateway.streaming.normalizer import (
    END_OF_STREAM,
    StreamShape,
    ToolCallAccumulator,
    decode_event_line,
    extract_text_from_sse,
    normalize_stream,
    parse_arguments,
    parse_document_content,
)
from tests.helpers import completion_chunk


def _data(payload: dict[str, object]) -> str:
    return f"data: {json.dumps(payload)}"


def _tool_fragment(index: int, name: str | None = None, arguments: str | None = None) -> dict:
    function: dict[str, str] = {}
    if name is not None:
        function["name"] = name
    if arguments is not None:
        function["arguments"] = arguments
    return {"index": index, "type": "function", "function": function}


def _text_delta(delta: str) -> dict[str, object]:
    return {"type": "response.output_text.delta", "delta": delta}


def _message_done(*texts: str) -> dict[str, object]:
    return {
        "type": "response.output_item.done",
        "item": {
            "type": "message",
            "role": "assistant",
            "content": [{"type": "output_text", "text": text} for text in texts],
        },
    }


def _function_call_done(name: str, arguments: str) -> dict[str, object]:
    return {
        "type": "response.output_item.done",
        "item": {"type": "function_call", "name": name, "arguments": arguments, "call_id": "c1"},
    }


async def _lines(*lines: str):
    for line in lines:
        yield line


def _normalize(shape: StreamShape, *lines: str) -> list:
    async def _collect():
        return [event async for event in normalize_stream(_lines(*lines), shape)]

    return asyncio.run(_collect())


def test_decode_event_line() -> None:
    assert decode_event_line("data: [DONE]") is END_OF_STREAM
    assert decode_event_line('data: {"a": 1}') == {"a": 1}
    assert decode_event_line('data:{"a": 1}') == {"a": 1}
    assert decode_event_line("event: response.created") is None
    assert decode_event_line("") is None
    assert decode_event_line("data: {broken") is None
    assert decode_event_line("data: [1, 2]") is None


def test_parse_arguments_failures_yield_empty_object() -> None:
    assert parse_arguments('{"name": "btn1"}') == {"name": "btn1"}
    assert parse_arguments('{"name": ') == {}
    assert parse_arguments("") == {}
    assert parse_arguments('"text"') == {}


def test_accumulator_non_empty_name_wins() -> None:
    accumulator = ToolCallAccumulator()
    accumulator.add("add_component", '{"na')
    accumulator.add("", 'me":"x"}')
    accumulator.add(None, None)
    assert accumulator.to_action() == ActionEvent(name="add_component", params={"name": "x"})


def test_chat_completions_tool_call_fragments_are_reassembled() -> None:
    events = _normalize(
        StreamShape.CHAT_COMPLETIONS,
        _data(completion_chunk(tool_calls=[_tool_fragment(0, "add_component", '{"name":')])),
        _data(completion_chunk(tool_calls=[_tool_fragment(0, arguments='"btn1"}')])),
        "data: [DONE]",
    )
    assert events == [
        ActionEvent(name="add_component", params={"name": "btn1"}),
        DoneEvent(explanation=""),
    ]


def test_chat_completions_text_and_multiple_tool_calls() -> None:
    events = _normalize(
        StreamShape.CHAT_COMPLETIONS,
        _data(completion_chunk(content="Adding ")),
        _data(
            completion_chunk(
                tool_calls=[
                    _tool_fragment(1, "remove_component", '{"name":"old"}'),
                    _tool_fragment(0, "add_component", '{"comp_type":"button",'),
                ]
            )
        ),
        _data(completion_chunk(tool_calls=[_tool_fragment(0, arguments='"name":"b1"}')])),
        _data(completion_chunk(content="two changes.")),
        "data: [DONE]",
    )
    assert events == [
        DeltaEvent(text="Adding "),
        DeltaEvent(text="two changes."),
        ActionEvent(name="add_component", params={"comp_type": "button", "name": "b1"}),
        ActionEvent(name="remove_component", params={"name": "old"}),
        DoneEvent(explanation="Adding two changes."),
    ]


def test_chat_completions_unparsable_arguments_yield_empty_params() -> None:
    events = _normalize(
        StreamShape.CHAT_COMPLETIONS,
        _data(completion_chunk(tool_calls=[_tool_fragment(0, "add_component", '{"name":')])),
    )
    assert events == [ActionEvent(name="add_component", params={}), DoneEvent(explanation="")]


def test_malformed_lines_are_skipped() -> None:
    events = _normalize(
        StreamShape.CHAT_COMPLETIONS,
        ": keep-alive",
        "data: {not json",
        _data(completion_chunk(content="ok")),
        'data: {"choices": []}',
        'data: {"choices": [{"delta": null}]}',
        "data: [DONE]",
    )
    assert events == [DeltaEvent(text="ok"), DoneEvent(explanation="ok")]


def test_stream_stops_at_end_marker() -> None:
    events = _normalize(
        StreamShape.CHAT_COMPLETIONS,
        _data(completion_chunk(content="a")),
        "data: [DONE]",
        _data(completion_chunk(content="ignored")),
    )
    assert events == [DeltaEvent(text="a"), DoneEvent(explanation="a")]


def test_stream_closed_without_end_marker_still_finishes() -> None:
    events = _normalize(StreamShape.RESPONSES, _data(_text_delta("partial")))
    assert events == [DeltaEvent(text="partial"), DoneEvent(explanation="partial")]


def test_responses_text_deltas_build_explanation() -> None:
    events = _normalize(
        StreamShape.RESPONSES,
        _data({"type": "response.created", "response": {"id": "r1"}}),
        _data(_text_delta("Hel")),
        _data(_text_delta("lo")),
        _data({"type": "response.completed"}),
        "data: [DONE]",
    )
    assert events == [
        DeltaEvent(text="Hel"),
        DeltaEvent(text="lo"),
        DoneEvent(explanation="Hello"),
    ]


def test_responses_completed_message_is_not_double_counted() -> None:
    events = _normalize(
        StreamShape.RESPONSES,
        _data(_text_delta("Hel")),
        _data(_text_delta("lo")),
        _data(_message_done("Hello")),
        "data: [DONE]",
    )
    assert events == [
        DeltaEvent(text="Hel"),
        DeltaEvent(text="lo"),
        DoneEvent(explanation="Hello"),
    ]


def test_responses_function_call_emits_action_immediately() -> None:
    events = _normalize(
        StreamShape.RESPONSES,
        _data(_function_call_done("add_component", '{"comp_type":"text","name":"title"}')),
        _data(_function_call_done("remove_component", "{broken")),
        _data(_message_done("Added ", "a title.")),
        "data: [DONE]",
    )
    assert events == [
        ActionEvent(name="add_component", params={"comp_type": "text", "name": "title"}),
        ActionEvent(name="remove_component", params={}),
        DoneEvent(explanation="Added a title."),
    ]


def test_responses_function_call_without_name_is_ignored() -> None:
    events = _normalize(StreamShape.RESPONSES, _data(_function_call_done("", "{}")))
    assert events == [DoneEvent(explanation="")]


def test_extract_text_from_sse_concatenates_deltas() -> None:
    body = "\n\n".join(
        [_data(_text_delta('{"explanation":')), _data(_text_delta('"hi"}')), "data: [DONE]"]
    )
    assert extract_text_from_sse(body) == '{"explanation":"hi"}'


def test_extract_text_from_sse_prefers_first_completed_message() -> None:
    body = "\n".join(
        [
            _data(_text_delta("partial")),
            _data(_message_done('{"explanation":"full"}')),
            _data(_message_done("second")),
        ]
    )
    assert extract_text_from_sse(body) == '{"explanation":"full"}'


def test_extract_text_from_sse_empty_stream() -> None:
    assert extract_text_from_sse("data: [DONE]\n\n") == ""


@pytest.mark.parametrize(
    "document",
    [
        {"explanation": "Added a button", "dsl": {"ui": {"compType": "page"}}},
        {"explanation": "", "dsl": None},
        {"anything": [1, 2, 3]},
    ],
)
def test_parse_document_content_returns_json_objects_unchanged(document: dict) -> None:
    assert parse_document_content(json.dumps(document)) == document


@pytest.mark.parametrize("content", ["Sure, here you go", "[1, 2]", '"quoted"', "{broken"])
def test_parse_document_content_falls_back_to_raw_text(content: str) -> None:
    assert parse_document_content(content) == {
        "explanation": content,
        "dsl": None,
        "raw": content,
    }
