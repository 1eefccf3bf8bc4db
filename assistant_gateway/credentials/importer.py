"""Import the auth bundle written by the Codex CLI (``auth.json``)."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from assistant_gateway.credentials.jwt_claims import extract_account_id
from assistant_gateway.credentials.models import StoredCredential
from assistant_gateway.upstream.base import CredentialImportError


class CodexTokens(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id_token: Any = None
    access_token: str | None = None
    refresh_token: str | None = None
    account_id: str | None = None


class CodexAuthFile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    auth_mode: str | None = None
    openai_api_key: str | None = Field(
        default=None, validation_alias=AliasChoices("openai_api_key", "OPENAI_API_KEY")
    )
    tokens: CodexTokens | None = None
    last_refresh: str | None = None


class CodexAuthImporter:
    def __init__(self, path: Path) -> None:
        self.path = path

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> CodexAuthFile:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise CredentialImportError(
                f"Could not read Codex CLI auth file: cannot read {self.path}: {exc}"
            ) from exc
        try:
            return CodexAuthFile.model_validate_json(raw)
        except ValidationError as exc:
            raise CredentialImportError(
                f"Could not read Codex CLI auth file: invalid JSON in {self.path}"
            ) from exc

    @staticmethod
    def to_credential(bundle: CodexAuthFile) -> StoredCredential:
        api_key = (bundle.openai_api_key or "").strip()
        if api_key:
            return StoredCredential.for_api_key(api_key)

        tokens = bundle.tokens
        access_token = (tokens.access_token or "").strip() if tokens else ""
        if tokens is not None and access_token:
            account_id = (tokens.account_id or "").strip() or extract_account_id(access_token)
            return StoredCredential.for_session(
                access_token=access_token,
                refresh_token=(tokens.refresh_token or "").strip(),
                account_id=account_id,
            )

        raise CredentialImportError("No valid credentials found in Codex CLI auth file")

    def import_credential(self) -> StoredCredential:
        return self.to_credential(self.load())
