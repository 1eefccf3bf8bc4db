import base64
import json
import sqlite3
from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx

Handler = Callable[[httpx.Request], httpx.Response]

COMPLETIONS_URL = "https://api.openai.com/v1/chat/completions"
SESSION_URL = "https://chatgpt.com/backend-api/codex/responses"
TOKEN_URL = "https://auth0.openai.com/oauth/token"


class FakeUpstream:
    """Scripted upstream for httpx.MockTransport; replies are consumed in order."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._replies: list[httpx.Response | Handler] = []

    def queue(self, *replies: httpx.Response | Handler) -> None:
        self._replies.extend(replies)

    def handle(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.requests.append(request)
        if not self._replies:
            raise AssertionError(f"unexpected upstream call: {request.method} {request.url}")
        reply = self._replies.pop(0)
        if isinstance(reply, httpx.Response):
            return reply
        return reply(request)

    def json_body(self, index: int) -> dict[str, Any]:
        body: dict[str, Any] = json.loads(self.requests[index].content.decode("utf-8"))
        return body

    def form_body(self, index: int) -> dict[str, str]:
        from urllib.parse import parse_qsl

        return dict(parse_qsl(self.requests[index].content.decode("utf-8")))


def sse_body(*payloads: dict[str, Any] | str, done: bool = True) -> bytes:
    lines = []
    for payload in payloads:
        data = payload if isinstance(payload, str) else json.dumps(payload)
        lines.append(f"data: {data}\n\n")
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode("utf-8")


def sse_response(*payloads: dict[str, Any] | str, done: bool = True) -> httpx.Response:
    return httpx.Response(
        200,
        content=sse_body(*payloads, done=done),
        headers={"content-type": "text/event-stream"},
    )


def completion_chunk(
    content: str | None = None, tool_calls: list[dict[str, Any]] | None = None
) -> dict[str, Any]:
    delta: dict[str, Any] = {}
    if content is not None:
        delta["content"] = content
    if tool_calls is not None:
        delta["tool_calls"] = tool_calls
    return {"choices": [{"index": 0, "delta": delta, "finish_reason": None}]}


def make_jwt(claims: dict[str, Any]) -> str:
    def _segment(value: dict[str, Any]) -> str:
        raw = json.dumps(value).encode("utf-8")
        return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")

    return f"{_segment({'alg': 'none', 'typ': 'JWT'})}.{_segment(claims)}.signature"


def session_jwt(account_id: str) -> str:
    return make_jwt({"https://api.openai.com/auth": {"chatgpt_account_id": account_id}})


def parse_frames(lines: list[str]) -> list[dict[str, Any]]:
    return [json.loads(line.removeprefix("data: ")) for line in lines if line.startswith("data: ")]


def write_raw_setting(path: Path, key: str, raw: str) -> None:
    """Write *raw* into a SQLite settings table, bypassing JSON encoding."""
    with sqlite3.connect(str(path)) as connection:
        connection.execute(
            "INSERT OR REPLACE INTO params (key, value) VALUES (?, ?)", (key, raw)
        )
        connection.commit()
