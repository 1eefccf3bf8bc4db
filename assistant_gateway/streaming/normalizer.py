"""Normalize upstream SSE streams into one client event sequence.

Two upstream grammars are handled:

* chat-completions chunks (``choices[0].delta`` with text and indexed
  tool-call fragments), and
* Responses-API events tagged by ``type``.

Each ``data:`` line is decoded on its own and handed to a per-shape handler.
Lines that do not decode are skipped. The stream ends at ``[DONE]`` or when
the upstream closes; either way a single ``DoneEvent`` is produced last.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from assistant_gateway.streaming.events import (
    ActionEvent,
    DeltaEvent,
    DoneEvent,
    NormalizedEvent,
)

END_MARKER = "[DONE]"

TEXT_DELTA = "response.output_text.delta"
ITEM_COMPLETED = "response.output_item.done"


class StreamShape(str, Enum):
    CHAT_COMPLETIONS = "chat_completions"
    RESPONSES = "responses"


class _EndOfStream:
    pass


END_OF_STREAM = _EndOfStream()


def decode_event_line(line: str) -> dict[str, Any] | _EndOfStream | None:
    """Decode one SSE line; None means "nothing usable on this line"."""
    if not line.startswith("data:"):
        return None
    data = line.removeprefix("data:").strip()
    if data == END_MARKER:
        return END_OF_STREAM
    try:
        parsed = json.loads(data)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def parse_arguments(raw: str) -> dict[str, Any]:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


@dataclass
class ToolCallAccumulator:
    name: str = ""
    argument_buffer: list[str] = field(default_factory=list)

    def add(self, name: object, arguments: object) -> None:
        if isinstance(name, str) and name:
            self.name = name
        if isinstance(arguments, str) and arguments:
            self.argument_buffer.append(arguments)

    def to_action(self) -> ActionEvent:
        return ActionEvent(name=self.name, params=parse_arguments("".join(self.argument_buffer)))


class ShapeHandler(Protocol):
    def handle(self, payload: dict[str, Any]) -> list[NormalizedEvent]:
        """Consume one decoded event and return what can be emitted now."""

    def finish(self) -> list[NormalizedEvent]:
        """Return the closing events, ending with exactly one DoneEvent."""


class ChatCompletionsHandler:
    def __init__(self) -> None:
        self._tool_calls: dict[int, ToolCallAccumulator] = {}
        self._text: list[str] = []

    def handle(self, payload: dict[str, Any]) -> list[NormalizedEvent]:
        choices = payload.get("choices")
        if not isinstance(choices, list) or not choices:
            return []
        choice = choices[0]
        if not isinstance(choice, dict):
            return []
        delta = choice.get("delta")
        if not isinstance(delta, dict):
            return []

        events: list[NormalizedEvent] = []
        content = delta.get("content")
        if isinstance(content, str) and content:
            self._text.append(content)
            events.append(DeltaEvent(text=content))

        tool_calls = delta.get("tool_calls")
        if isinstance(tool_calls, list):
            for fragment in tool_calls:
                if not isinstance(fragment, dict):
                    continue
                index = fragment.get("index", 0)
                if not isinstance(index, int):
                    continue
                function = fragment.get("function")
                if not isinstance(function, dict):
                    function = {}
                accumulator = self._tool_calls.setdefault(index, ToolCallAccumulator())
                accumulator.add(function.get("name"), function.get("arguments"))
        return events

    def finish(self) -> list[NormalizedEvent]:
        events: list[NormalizedEvent] = [
            self._tool_calls[index].to_action() for index in sorted(self._tool_calls)
        ]
        self._tool_calls.clear()
        events.append(DoneEvent(explanation="".join(self._text)))
        return events


class ResponsesHandler:
    def __init__(self) -> None:
        self._committed: list[str] = []
        self._pending: list[str] = []

    def handle(self, payload: dict[str, Any]) -> list[NormalizedEvent]:
        event_type = payload.get("type")
        if event_type == TEXT_DELTA:
            delta = payload.get("delta")
            if isinstance(delta, str) and delta:
                self._pending.append(delta)
                return [DeltaEvent(text=delta)]
            return []

        if event_type != ITEM_COMPLETED:
            return []
        item = payload.get("item")
        if not isinstance(item, dict):
            return []

        item_type = item.get("type")
        if item_type == "function_call":
            name = item.get("name")
            if not isinstance(name, str) or not name:
                return []
            arguments = item.get("arguments")
            params = parse_arguments(arguments) if isinstance(arguments, str) else {}
            return [ActionEvent(name=name, params=params)]

        if item_type == "message":
            text = "".join(_output_text_segments(item))
            if text:
                # The completed message replaces the deltas streamed for it.
                self._committed.append(text)
                self._pending.clear()
        return []

    def finish(self) -> list[NormalizedEvent]:
        explanation = "".join(self._committed) + "".join(self._pending)
        return [DoneEvent(explanation=explanation)]


def _output_text_segments(item: dict[str, Any]) -> Iterable[str]:
    content = item.get("content")
    if not isinstance(content, list):
        return
    for segment in content:
        if not isinstance(segment, dict):
            continue
        if segment.get("type") != "output_text":
            continue
        text = segment.get("text")
        if isinstance(text, str) and text:
            yield text


_HANDLERS: dict[StreamShape, type[ChatCompletionsHandler] | type[ResponsesHandler]] = {
    StreamShape.CHAT_COMPLETIONS: ChatCompletionsHandler,
    StreamShape.RESPONSES: ResponsesHandler,
}


async def normalize_stream(
    lines: AsyncIterator[str], shape: StreamShape
) -> AsyncIterator[NormalizedEvent]:
    handler: ShapeHandler = _HANDLERS[shape]()
    async for line in lines:
        payload = decode_event_line(line)
        if payload is END_OF_STREAM:
            break
        if not isinstance(payload, dict):
            continue
        for event in handler.handle(payload):
            yield event
    for event in handler.finish():
        yield event


def extract_text_from_sse(sse_text: str) -> str:
    """Reassemble the model text of a buffered Responses-API stream.

    The first completed message item carries the full text and wins;
    otherwise the streamed text deltas are concatenated.
    """
    parts: list[str] = []
    for line in sse_text.splitlines():
        payload = decode_event_line(line)
        if payload is END_OF_STREAM:
            break
        if not isinstance(payload, dict):
            continue
        event_type = payload.get("type")
        if event_type == TEXT_DELTA:
            delta = payload.get("delta")
            if isinstance(delta, str):
                parts.append(delta)
        elif event_type == ITEM_COMPLETED:
            item = payload.get("item")
            if isinstance(item, dict) and item.get("type") == "message":
                for text in _output_text_segments(item):
                    return text
    return "".join(parts)


def parse_document_content(content: str) -> dict[str, Any]:
    """Parse model output in document mode, degrading to the raw text."""
    try:
        parsed = json.loads(content)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, dict):
        return parsed
    return {"explanation": content, "dsl": None, "raw": content}
