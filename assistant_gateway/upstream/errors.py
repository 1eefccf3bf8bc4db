"""Translate upstream error responses into user-actionable messages."""

import json

from assistant_gateway.upstream.base import (
    Backend,
    UpstreamAuthError,
    UpstreamProtocolError,
)

AUTH_FAILED_MESSAGE = "AI authentication failed. Reconnect AI in Settings or update your API key."
GENERIC_MESSAGE = "AI service error"
MISSING_SCOPE_MESSAGE = (
    "Your AI credentials lack the 'model.request' scope. Reconnect AI in Settings, or create "
    "a new key with full permissions at https://platform.openai.com/api-keys"
)
SESSION_NO_API_ACCESS_MESSAGE = (
    "Your ChatGPT sign-in token doesn't have API access. Reconnect AI in Settings or use an "
    "API key instead, from https://platform.openai.com/api-keys"
)
SESSION_PERMISSION_MARKERS = ("insufficient permissions", "api.responses.write", "model.request")


def _decode(body: bytes | str) -> str:
    if isinstance(body, bytes):
        return body.decode("utf-8", errors="replace")
    return body


def _provider_message(text: str) -> str | None:
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None
    error = parsed.get("error")
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str) and message.strip():
            return message.strip()
    if isinstance(error, str) and error.strip():
        return error.strip()
    for key in ("message", "detail"):
        value = parsed.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _auth_failure_message(status_code: int, text: str, backend: Backend) -> str | None:
    if backend is Backend.SESSION and any(
        marker in text for marker in SESSION_PERMISSION_MARKERS
    ):
        return SESSION_NO_API_ACCESS_MESSAGE
    if "model.request" in text:
        return MISSING_SCOPE_MESSAGE
    if status_code == 401:
        return AUTH_FAILED_MESSAGE
    return None


def map_upstream_error(
    status_code: int,
    body: bytes | str,
    backend: Backend = Backend.COMPLETIONS,
    max_chars: int = 2000,
) -> str:
    text = _decode(body).strip()
    auth_message = _auth_failure_message(status_code, text, backend)
    if auth_message is not None:
        return auth_message
    if not text:
        return GENERIC_MESSAGE
    detail = _provider_message(text) or text
    if max_chars > 0 and len(detail) > max_chars:
        detail = detail[:max_chars].rstrip() + "..."
    return f"{GENERIC_MESSAGE}: {detail}"


def upstream_error_from_response(
    status_code: int,
    body: bytes | str,
    backend: Backend = Backend.COMPLETIONS,
    max_chars: int = 2000,
) -> UpstreamAuthError | UpstreamProtocolError:
    text = _decode(body).strip()
    message = map_upstream_error(status_code, text, backend=backend, max_chars=max_chars)
    if _auth_failure_message(status_code, text, backend) is not None:
        return UpstreamAuthError(message, upstream_status=status_code)
    return UpstreamProtocolError(message, upstream_status=status_code)
