from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

from assistant_gateway.config.settings import clear_settings_cache
from assistant_gateway.credentials.store import InMemorySettingsStore
from assistant_gateway.main import create_app
from tests.helpers import FakeUpstream


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def settings_store() -> InMemorySettingsStore:
    return InMemorySettingsStore()


@pytest.fixture
def codex_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    home = tmp_path / "codex"
    home.mkdir()
    monkeypatch.setenv("AIGW_CODEX_HOME", str(home))
    return home


@pytest.fixture
def client(
    monkeypatch: pytest.MonkeyPatch,
    upstream: FakeUpstream,
    settings_store: InMemorySettingsStore,
    codex_home: Path,
) -> TestClient:
    monkeypatch.setenv("AIGW_USER_TOKENS", "user-token")
    monkeypatch.setenv("AIGW_ADMIN_TOKENS", "admin-token")
    monkeypatch.setenv("AIGW_CREDENTIAL_STORE_BACKEND", "memory")
    clear_settings_cache()
    app = create_app(
        transport=httpx.MockTransport(upstream.handle),
        settings_store=settings_store,
    )
    return TestClient(app)


@pytest.fixture
def user_headers() -> dict[str, str]:
    return {"Authorization": "Bearer user-token"}


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"Authorization": "Bearer admin-token"}
