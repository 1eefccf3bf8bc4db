from dataclasses import dataclass
from enum import Enum
from typing import Any


class AuthMethod(str, Enum):
    NONE = "none"
    API_KEY = "api_key"
    OAUTH_SESSION = "oauth_session"

    @classmethod
    def parse(cls, raw: object) -> "AuthMethod":
        if not isinstance(raw, str):
            return cls.NONE
        normalized = raw.strip().lower()
        if normalized == "codex_chatgpt":
            return cls.OAUTH_SESSION
        try:
            return cls(normalized)
        except ValueError:
            return cls.NONE


@dataclass(frozen=True)
class StoredCredential:
    """The single persisted upstream credential.

    Only the fields belonging to ``auth_method`` are ever populated:
    ``api_key`` for ``api_key``; ``access_token``, ``refresh_token`` and
    ``account_id`` for ``oauth_session``.
    """

    auth_method: AuthMethod = AuthMethod.NONE
    api_key: str = ""
    access_token: str = ""
    refresh_token: str = ""
    account_id: str = ""

    @classmethod
    def none(cls) -> "StoredCredential":
        return cls()

    @classmethod
    def for_api_key(cls, api_key: str) -> "StoredCredential":
        return cls(auth_method=AuthMethod.API_KEY, api_key=api_key)

    @classmethod
    def for_session(
        cls, access_token: str, refresh_token: str = "", account_id: str = ""
    ) -> "StoredCredential":
        return cls(
            auth_method=AuthMethod.OAUTH_SESSION,
            access_token=access_token,
            refresh_token=refresh_token,
            account_id=account_id,
        )

    @property
    def bearer_token(self) -> str:
        if self.auth_method is AuthMethod.OAUTH_SESSION:
            return self.access_token
        if self.auth_method is AuthMethod.API_KEY:
            return self.api_key
        return ""

    @property
    def is_session(self) -> bool:
        return self.auth_method is AuthMethod.OAUTH_SESSION

    def to_dict(self) -> dict[str, str]:
        return {
            "auth_method": self.auth_method.value,
            "api_key": self.api_key,
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "account_id": self.account_id,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "StoredCredential":
        method = AuthMethod.parse(raw.get("auth_method"))

        def _text(key: str) -> str:
            value = raw.get(key)
            return value.strip() if isinstance(value, str) else ""

        if method is AuthMethod.API_KEY:
            return cls.for_api_key(_text("api_key"))
        if method is AuthMethod.OAUTH_SESSION:
            return cls.for_session(
                access_token=_text("access_token"),
                refresh_token=_text("refresh_token"),
                account_id=_text("account_id"),
            )
        return cls.none()
