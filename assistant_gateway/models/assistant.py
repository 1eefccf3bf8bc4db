from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ConfigUpdateRequest(_CamelModel):
    api_key: str = Field(default="", alias="apiKey")
    clear: bool = False


class SaveTokensRequest(_CamelModel):
    access_token: str = Field(default="", alias="accessToken")
    refresh_token: str = Field(default="", alias="refreshToken")


class ChatRequest(_CamelModel):
    message: str = Field(min_length=1)
    current_dsl: Any = Field(default=None, alias="currentDSL")


class ChatStreamRequest(_CamelModel):
    message: str = Field(min_length=1)
    component_list: list[str] = Field(default_factory=list, alias="componentList")


class ConfigStatus(_CamelModel):
    has_api_key: bool = Field(serialization_alias="hasApiKey")
    has_codex_auth: bool = Field(serialization_alias="hasCodexAuth")
    auth_method: str = Field(serialization_alias="authMethod")
    codex_available: bool = Field(serialization_alias="codexAvailable")
    is_admin: bool = Field(serialization_alias="isAdmin")
    model: str
