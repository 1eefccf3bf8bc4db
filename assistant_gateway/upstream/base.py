from dataclasses import dataclass, field
from enum import Enum


class GatewayError(Exception):
    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        error_type: str = "upstream",
    ):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.error_type = error_type


class ConfigurationError(GatewayError):
    """No usable AI credential is configured."""

    def __init__(self, message: str = "No AI authentication configured. Add an API key or sign in in Settings."):
        super().__init__(400, "ai_not_configured", message, error_type="configuration")


class CredentialImportError(GatewayError):
    def __init__(self, message: str):
        super().__init__(400, "credential_import_failed", message, error_type="configuration")


class RefreshError(GatewayError):
    def __init__(self, message: str):
        super().__init__(502, "token_refresh_failed", message, error_type="auth")


class UpstreamAuthError(GatewayError):
    def __init__(self, message: str, upstream_status: int):
        super().__init__(502, "upstream_auth_error", message, error_type="auth")
        self.upstream_status = upstream_status


class UpstreamProtocolError(GatewayError):
    def __init__(self, message: str, upstream_status: int):
        super().__init__(502, "upstream_error", message)
        self.upstream_status = upstream_status


class UpstreamUnavailableError(GatewayError):
    pass


class EmptyResponseError(GatewayError):
    def __init__(self) -> None:
        super().__init__(502, "upstream_empty_response", "AI returned no response")


class Backend(str, Enum):
    COMPLETIONS = "completions"
    SESSION = "session"


class Mode(str, Enum):
    DOCUMENT = "document"
    TOOLS = "tools"


@dataclass(frozen=True)
class UpstreamRequest:
    backend: Backend
    mode: Mode
    url: str
    body: dict[str, object] = field(default_factory=dict)
    stream: bool = False
    account_id: str = ""

    def headers(self, token: str) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        if self.stream:
            headers["Accept"] = "text/event-stream"
        if self.backend is Backend.SESSION and self.account_id:
            headers["ChatGPT-Account-ID"] = self.account_id
        return headers
