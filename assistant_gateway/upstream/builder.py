"""Request bodies for the two upstream backends in both interaction modes."""

import json
from collections.abc import Sequence

from assistant_gateway.config.settings import Settings
from assistant_gateway.credentials.models import StoredCredential
from assistant_gateway.upstream.base import Backend, Mode, UpstreamRequest
from assistant_gateway.upstream.prompts import (
    DOCUMENT_SYSTEM_PROMPT,
    EDITOR_TOOLS,
    EDITOR_TOOLS_FLAT,
    JSON_RESPONSE_SUFFIX,
    TOOL_SYSTEM_PROMPT,
)


def backend_for(credential: StoredCredential) -> Backend:
    return Backend.SESSION if credential.is_session else Backend.COMPLETIONS


def document_user_turn(message: str, current_dsl: object | None) -> str:
    if current_dsl is None:
        return message
    serialized = json.dumps(current_dsl, ensure_ascii=False, separators=(",", ":"))
    if serialized == "{}":
        return message
    return f"Current page DSL:\n```json\n{serialized}\n```\n\nUser request: {message}"


def tool_user_turn(message: str, component_names: Sequence[str] | None) -> str:
    if not component_names:
        return message
    serialized = json.dumps(list(component_names), ensure_ascii=False, separators=(",", ":"))
    return f"Current components on canvas: {serialized}\n\nUser request: {message}"


class RequestBuilder:
    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def build(
        self,
        backend: Backend,
        mode: Mode,
        user_turn: str,
        account_id: str = "",
    ) -> UpstreamRequest:
        if backend is Backend.SESSION:
            return self._session_request(mode, user_turn, account_id)
        return self._completions_request(mode, user_turn)

    def _completions_request(self, mode: Mode, user_turn: str) -> UpstreamRequest:
        system_prompt = DOCUMENT_SYSTEM_PROMPT if mode is Mode.DOCUMENT else TOOL_SYSTEM_PROMPT
        body: dict[str, object] = {
            "model": self._settings.completions_model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_turn},
            ],
            "temperature": self._settings.completions_temperature,
        }
        if mode is Mode.DOCUMENT:
            body["max_tokens"] = self._settings.completions_max_tokens
            body["response_format"] = {"type": "json_object"}
        else:
            body["tools"] = EDITOR_TOOLS
            body["stream"] = True

        return UpstreamRequest(
            backend=Backend.COMPLETIONS,
            mode=mode,
            url=self._settings.completions_url,
            body=body,
            stream=mode is Mode.TOOLS,
        )

    def _session_request(self, mode: Mode, user_turn: str, account_id: str) -> UpstreamRequest:
        body: dict[str, object] = {"model": self._settings.session_model}
        if mode is Mode.DOCUMENT:
            body["instructions"] = DOCUMENT_SYSTEM_PROMPT
            body["input"] = [{"role": "user", "content": user_turn + JSON_RESPONSE_SUFFIX}]
            body["text"] = {"format": {"type": "json_object"}}
        else:
            body["instructions"] = TOOL_SYSTEM_PROMPT
            body["input"] = [{"role": "user", "content": user_turn}]
            body["tools"] = EDITOR_TOOLS_FLAT
        body["stream"] = True
        body["store"] = False

        return UpstreamRequest(
            backend=Backend.SESSION,
            mode=mode,
            url=self._settings.session_url,
            body=body,
            stream=True,
            account_id=account_id,
        )
