from pathlib import Path

import pytest

from assistant_gateway.credentials.models import AuthMethod, StoredCredential
from assistant_gateway.credentials.store import (
    CredentialStore,
    InMemorySettingsStore,
    SQLiteSettingsStore,
    create_settings_store,
)
from tests.helpers import write_raw_setting


@pytest.fixture(params=["memory", "sqlite"])
def settings_backend(request: pytest.FixtureRequest, tmp_path: Path):
    if request.param == "memory":
        return InMemorySettingsStore()
    return SQLiteSettingsStore(path=tmp_path / "settings.db")


def test_settings_store_get_set_delete(settings_backend) -> None:
    assert settings_backend.get("missing") is None
    settings_backend.set("ai_auth", {"auth_method": "api_key", "api_key": "sk-1"})
    assert settings_backend.get("ai_auth") == {"auth_method": "api_key", "api_key": "sk-1"}
    settings_backend.set("ai_auth", {"auth_method": "none"})
    assert settings_backend.get("ai_auth") == {"auth_method": "none"}
    settings_backend.delete("ai_auth")
    assert settings_backend.get("ai_auth") is None


def test_settings_store_compare_and_set(settings_backend) -> None:
    assert settings_backend.compare_and_set("k", None, {"v": 1}) is True
    assert settings_backend.compare_and_set("k", None, {"v": 2}) is False
    assert settings_backend.compare_and_set("k", {"v": 9}, {"v": 2}) is False
    assert settings_backend.get("k") == {"v": 1}
    assert settings_backend.compare_and_set("k", {"v": 1}, {"v": 2}) is True
    assert settings_backend.get("k") == {"v": 2}


def test_sqlite_store_persists_across_instances(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "settings.db"
    SQLiteSettingsStore(path=path).set("openai_key", "sk-legacy")
    assert SQLiteSettingsStore(path=path).get("openai_key") == "sk-legacy"


def test_create_settings_store_backends(tmp_path: Path) -> None:
    assert create_settings_store(backend="Memory", path=None).backend == "memory"
    sqlite_store = create_settings_store(backend="sqlite", path=tmp_path / "s.db")
    assert sqlite_store.backend == "sqlite"
    with pytest.raises(ValueError, match="requires a path"):
        create_settings_store(backend="sqlite", path=None)
    with pytest.raises(ValueError, match="Unsupported"):
        create_settings_store(backend="redis", path=None)


def test_credential_store_round_trip(settings_backend) -> None:
    store = CredentialStore(settings_backend)
    assert store.get() is None

    credential = StoredCredential.for_session("access-1", "refresh-1", "acct-1")
    store.set(credential)
    assert store.get() == credential


def test_credential_store_unparsable_record_reads_as_absent(tmp_path: Path) -> None:
    path = tmp_path / "settings.db"
    backend = SQLiteSettingsStore(path=path)
    write_raw_setting(path, "ai_auth", "{not json")
    assert CredentialStore(backend).get() is None


def test_credential_store_non_object_record_reads_as_absent() -> None:
    backend = InMemorySettingsStore()
    backend.set("ai_auth", ["api_key", "sk-1"])
    assert CredentialStore(backend).get() is None


def test_credential_store_normalizes_mixed_record() -> None:
    backend = InMemorySettingsStore()
    backend.set(
        "ai_auth",
        {
            "auth_method": "api_key",
            "api_key": " sk-1 ",
            "access_token": "leftover",
            "refresh_token": "leftover",
        },
    )
    credential = CredentialStore(backend).get()
    assert credential == StoredCredential.for_api_key("sk-1")


def test_credential_store_accepts_legacy_method_name() -> None:
    backend = InMemorySettingsStore()
    backend.set("ai_auth", {"auth_method": "codex_chatgpt", "access_token": "tok"})
    credential = CredentialStore(backend).get()
    assert credential is not None
    assert credential.auth_method is AuthMethod.OAUTH_SESSION
    assert credential.bearer_token == "tok"


def test_credential_store_legacy_key() -> None:
    backend = InMemorySettingsStore()
    store = CredentialStore(backend)
    assert store.get_legacy_api_key() == ""
    backend.set("openai_key", "  sk-legacy ")
    assert store.get_legacy_api_key() == "sk-legacy"
    backend.set("openai_key", {"unexpected": True})
    assert store.get_legacy_api_key() == ""


def test_credential_store_clear_writes_none_record() -> None:
    backend = InMemorySettingsStore()
    store = CredentialStore(backend)
    store.set(StoredCredential.for_api_key("sk-1"))
    store.clear()
    assert store.get() == StoredCredential.none()
    assert backend.get("ai_auth")["auth_method"] == "none"


def test_credential_store_compare_and_swap(settings_backend) -> None:
    store = CredentialStore(settings_backend)
    stale = StoredCredential.for_session("access-1", "refresh-1")
    fresh = StoredCredential.for_session("access-2", "refresh-2")
    store.set(stale)

    assert store.compare_and_swap(stale, fresh) is True
    assert store.get() == fresh

    other = StoredCredential.for_session("access-3", "refresh-3")
    assert store.compare_and_swap(stale, other) is False
    assert store.get() == fresh


def test_credential_store_compare_and_swap_on_absent_record() -> None:
    store = CredentialStore(InMemorySettingsStore())
    expected = StoredCredential.for_session("access-1")
    assert store.compare_and_swap(expected, StoredCredential.for_session("access-2")) is False
    assert store.get() is None
