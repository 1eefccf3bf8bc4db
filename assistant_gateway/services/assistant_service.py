import json as json_mod
import logging
from collections.abc import AsyncIterator, Sequence
from typing import Any

import httpx

from assistant_gateway.config.settings import Settings
from assistant_gateway.core.errors import AppError
from assistant_gateway.credentials.importer import CodexAuthImporter
from assistant_gateway.credentials.jwt_claims import extract_account_id
from assistant_gateway.credentials.models import AuthMethod, StoredCredential
from assistant_gateway.credentials.refresh import RefreshRetryCoordinator
from assistant_gateway.credentials.resolver import CredentialResolver
from assistant_gateway.credentials.store import CredentialStore
from assistant_gateway.models.assistant import ConfigStatus
from assistant_gateway.streaming.events import NormalizedEvent
from assistant_gateway.streaming.normalizer import (
    StreamShape,
    extract_text_from_sse,
    normalize_stream,
    parse_document_content,
)
from assistant_gateway.upstream.base import (
    Backend,
    EmptyResponseError,
    Mode,
    UpstreamProtocolError,
    UpstreamRequest,
)
from assistant_gateway.upstream.builder import (
    RequestBuilder,
    backend_for,
    document_user_turn,
    tool_user_turn,
)
from assistant_gateway.upstream.client import UpstreamClient
from assistant_gateway.upstream.errors import upstream_error_from_response

logger = logging.getLogger("aigw.assistant")

_STREAM_SHAPES = {
    Backend.COMPLETIONS: StreamShape.CHAT_COMPLETIONS,
    Backend.SESSION: StreamShape.RESPONSES,
}


class AssistantService:
    def __init__(
        self,
        settings: Settings,
        store: CredentialStore,
        resolver: CredentialResolver,
        coordinator: RefreshRetryCoordinator,
        builder: RequestBuilder,
        upstream: UpstreamClient,
        importer: CodexAuthImporter,
    ) -> None:
        self._settings = settings
        self._store = store
        self._resolver = resolver
        self._coordinator = coordinator
        self._builder = builder
        self._upstream = upstream
        self._importer = importer

    # -- Configuration ---------------------------------------------------

    def config_status(self, is_admin: bool) -> ConfigStatus:
        credential = self._resolver.resolve()
        model = (
            self._settings.session_model
            if credential.is_session
            else self._settings.completions_model
        )
        return ConfigStatus(
            has_api_key=bool(credential.api_key),
            has_codex_auth=bool(credential.access_token),
            auth_method=credential.auth_method.value,
            codex_available=self._importer.exists(),
            is_admin=is_admin,
            model=model,
        )

    def update_config(self, api_key: str, clear: bool) -> None:
        if clear:
            self._store.clear()
            logger.info("ai_credential_cleared", extra={"auth_method": AuthMethod.NONE.value})
            return
        api_key = api_key.strip()
        if api_key:
            self._store.set(StoredCredential.for_api_key(api_key))
            logger.info("ai_credential_saved", extra={"auth_method": AuthMethod.API_KEY.value})

    def save_tokens(self, access_token: str, refresh_token: str) -> None:
        access_token = access_token.strip()
        if not access_token:
            raise AppError(400, "access_token_required", "validation", "Access token is required")
        self._store.set(
            StoredCredential.for_session(
                access_token=access_token,
                refresh_token=refresh_token.strip(),
                account_id=extract_account_id(access_token),
            )
        )
        logger.info("ai_credential_saved", extra={"auth_method": AuthMethod.OAUTH_SESSION.value})

    def import_codex_auth(self) -> dict[str, str]:
        credential = self._importer.import_credential()
        self._store.set(credential)
        logger.info("ai_credential_imported", extra={"auth_method": credential.auth_method.value})
        return {"method": credential.auth_method.value}

    # -- Document mode ---------------------------------------------------

    async def chat(self, message: str, current_dsl: object | None) -> dict[str, Any]:
        credential = self._resolver.resolve()
        backend = backend_for(credential)
        upstream = self._builder.build(
            backend,
            Mode.DOCUMENT,
            document_user_turn(message, current_dsl),
            account_id=credential.account_id,
        )

        response = await self._send(upstream)
        try:
            body = await response.aread()
        finally:
            await response.aclose()
        if response.status_code != 200:
            raise upstream_error_from_response(
                response.status_code,
                body,
                backend=backend,
                max_chars=self._settings.error_body_max_chars,
            )

        if backend is Backend.SESSION:
            content = extract_text_from_sse(body.decode("utf-8", errors="replace"))
        else:
            content = self._completion_content(body)
        if not content:
            raise EmptyResponseError()
        return parse_document_content(content)

    @staticmethod
    def _completion_content(body: bytes) -> str:
        try:
            payload = json_mod.loads(body)
        except ValueError as exc:
            raise UpstreamProtocolError("Failed to parse AI response", upstream_status=200) from exc
        choices = payload.get("choices") if isinstance(payload, dict) else None
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            return ""
        message = choices[0].get("message")
        if not isinstance(message, dict):
            return ""
        content = message.get("content")
        return content if isinstance(content, str) else ""

    # -- Tool-calling mode -----------------------------------------------

    async def chat_stream(
        self, message: str, component_list: Sequence[str] | None
    ) -> AsyncIterator[NormalizedEvent]:
        credential = self._resolver.resolve()
        backend = backend_for(credential)
        upstream = self._builder.build(
            backend,
            Mode.TOOLS,
            tool_user_turn(message, component_list),
            account_id=credential.account_id,
        )

        response = await self._send(upstream)
        try:
            if response.status_code != 200:
                body = await response.aread()
                raise upstream_error_from_response(
                    response.status_code,
                    body,
                    backend=backend,
                    max_chars=self._settings.error_body_max_chars,
                )
            async for event in normalize_stream(response.aiter_lines(), _STREAM_SHAPES[backend]):
                yield event
        finally:
            await response.aclose()

    async def _send(self, upstream: UpstreamRequest) -> httpx.Response:
        async def request_fn(token: str) -> httpx.Response:
            return await self._upstream.send(upstream, token)

        return await self._coordinator.execute(request_fn)

    async def aclose(self) -> None:
        await self._upstream.aclose()
