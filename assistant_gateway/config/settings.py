import os
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="AIGW_", case_sensitive=False)

    log_level: str = "INFO"
    user_tokens: str = Field(default="", description="Comma separated user session tokens")
    admin_tokens: str = Field(default="dev-admin", description="Comma separated admin tokens")
    metrics_enabled: bool = True

    # Credential persistence
    credential_store_backend: str = "sqlite"
    credential_store_path: Path = Path("artifacts/settings.db")
    credential_key: str = "ai_auth"
    legacy_api_key_key: str = "openai_key"
    codex_home: Path | None = None

    # API-key backend
    completions_url: str = "https://api.openai.com/v1/chat/completions"
    completions_model: str = "gpt-4o"
    completions_temperature: float = 0.7
    completions_max_tokens: int = 16000

    # Session backend
    session_url: str = "https://chatgpt.com/backend-api/codex/responses"
    session_model: str = "gpt-5-codex-mini"

    # OAuth refresh grant
    oauth_token_endpoint: str = "https://auth0.openai.com/oauth/token"
    oauth_client_id: str = "app_EMoamEEZ73f0CkXaXp7hrann"
    oauth_scope: str = "openid profile email"

    upstream_timeout_s: float = 120.0
    error_body_max_chars: int = 2000

    @property
    def admin_token_set(self) -> set[str]:
        return {item.strip() for item in self.admin_tokens.split(",") if item.strip()}

    @property
    def user_token_set(self) -> set[str]:
        users = {item.strip() for item in self.user_tokens.split(",") if item.strip()}
        return users | self.admin_token_set

    @property
    def credential_store_backend_normalized(self) -> str:
        return self.credential_store_backend.strip().lower()

    @property
    def codex_auth_path(self) -> Path:
        """Location of the CLI auth bundle: ``AIGW_CODEX_HOME``, ``$CODEX_HOME`` or ``~/.codex``."""
        if self.codex_home is not None:
            home = self.codex_home
        else:
            env_home = os.environ.get("CODEX_HOME", "").strip()
            home = Path(env_home) if env_home else Path.home() / ".codex"
        return home / "auth.json"


@lru_cache
def get_settings() -> Settings:
    return Settings()


def clear_settings_cache() -> None:
    get_settings.cache_clear()
