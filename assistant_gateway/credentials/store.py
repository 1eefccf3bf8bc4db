"""Key-value settings backends and the credential adapter built on them."""

from __future__ import annotations

import json
import sqlite3
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from assistant_gateway.credentials.models import StoredCredential


def _encode(value: Any) -> str:
    return json.dumps(value, ensure_ascii=True, sort_keys=True, separators=(",", ":"))


def _decode(raw: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


class SettingsStore(Protocol):
    backend: str

    def get(self, key: str) -> Any | None:
        """Return the stored JSON value for *key*, or None when absent."""

    def set(self, key: str, value: Any) -> None:
        """Create or replace the value for *key*."""

    def delete(self, key: str) -> None:
        """Remove *key* if present."""

    def compare_and_set(self, key: str, expected: Any | None, new: Any) -> bool:
        """Atomically replace *expected* with *new*; None means "absent"."""


@dataclass
class InMemorySettingsStore:
    backend: str = "memory"
    _values: dict[str, str] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def get(self, key: str) -> Any | None:
        with self._lock:
            raw = self._values.get(key)
        return None if raw is None else _decode(raw)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._values[key] = _encode(value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._values.pop(key, None)

    def compare_and_set(self, key: str, expected: Any | None, new: Any) -> bool:
        with self._lock:
            current = self._values.get(key)
            wanted = None if expected is None else _encode(expected)
            if current != wanted:
                return False
            self._values[key] = _encode(new)
            return True


@dataclass
class SQLiteSettingsStore:
    path: Path
    backend: str = "sqlite"

    def __post_init__(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(str(self.path), timeout=5.0)
        connection.row_factory = sqlite3.Row
        return connection

    def _ensure_schema(self) -> None:
        with self._connect() as connection:
            connection.execute(
                """
                CREATE TABLE IF NOT EXISTS params (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )
            connection.commit()

    def get(self, key: str) -> Any | None:
        with self._connect() as connection:
            row = connection.execute(
                "SELECT value FROM params WHERE key = ?", (key,)
            ).fetchone()
        if row is None:
            return None
        return _decode(row["value"])

    def set(self, key: str, value: Any) -> None:
        with self._connect() as connection:
            connection.execute(
                """
                INSERT INTO params (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (key, _encode(value)),
            )
            connection.commit()

    def delete(self, key: str) -> None:
        with self._connect() as connection:
            connection.execute("DELETE FROM params WHERE key = ?", (key,))
            connection.commit()

    def compare_and_set(self, key: str, expected: Any | None, new: Any) -> bool:
        with self._connect() as connection:
            if expected is None:
                cursor = connection.execute(
                    "INSERT OR IGNORE INTO params (key, value) VALUES (?, ?)",
                    (key, _encode(new)),
                )
            else:
                cursor = connection.execute(
                    "UPDATE params SET value = ? WHERE key = ? AND value = ?",
                    (_encode(new), key, _encode(expected)),
                )
            connection.commit()
            return int(cursor.rowcount or 0) == 1


def create_settings_store(*, backend: str, path: Path | None) -> SettingsStore:
    normalized_backend = backend.strip().lower()
    if normalized_backend == "memory":
        return InMemorySettingsStore()
    if normalized_backend == "sqlite":
        if path is None:
            raise ValueError("sqlite settings store requires a path")
        return SQLiteSettingsStore(path=path)
    raise ValueError(f"Unsupported settings store backend: {backend}")


class CredentialStore:
    """Owns the persisted StoredCredential; everyone else holds copies."""

    def __init__(
        self,
        settings_store: SettingsStore,
        key: str = "ai_auth",
        legacy_key: str = "openai_key",
    ) -> None:
        self._settings_store = settings_store
        self._key = key
        self._legacy_key = legacy_key

    def get(self) -> StoredCredential | None:
        raw = self._settings_store.get(self._key)
        if not isinstance(raw, dict):
            return None
        return StoredCredential.from_dict(raw)

    def get_legacy_api_key(self) -> str:
        raw = self._settings_store.get(self._legacy_key)
        if not isinstance(raw, str):
            return ""
        return raw.strip()

    def set(self, credential: StoredCredential) -> None:
        self._settings_store.set(self._key, credential.to_dict())

    def clear(self) -> None:
        # An explicit none record keeps the legacy slot from being picked up again.
        self.set(StoredCredential.none())

    def compare_and_swap(self, expected: StoredCredential, new: StoredCredential) -> bool:
        """Write *new* only if the persisted record still equals *expected*."""
        raw = self._settings_store.get(self._key)
        current = StoredCredential.from_dict(raw) if isinstance(raw, dict) else None
        if current != expected:
            return False
        return self._settings_store.compare_and_set(self._key, raw, new.to_dict())
