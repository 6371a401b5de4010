from __future__ import annotations

import copy
import json
import sqlite3
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

Mutator = Callable[[Any], Any]


class KeyValueStore(Protocol):
    """Blob store the hub persists favorites, alerts and display settings into.

    Values are JSON-compatible structures. Absent keys return ``default``.
    ``mutate`` applies a read-modify-write atomically; returning None deletes the key.
    """

    def get(self, key: str, default: Any = None) -> Any: ...

    def update(self, key: str, value: Any) -> None: ...

    def mutate(self, key: str, mutator: Mutator, default: Any = None) -> Any: ...


class InMemoryKeyValueStore:
    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            if key not in self._values:
                return default
            return copy.deepcopy(self._values[key])

    def update(self, key: str, value: Any) -> None:
        with self._lock:
            if value is None:
                self._values.pop(key, None)
                return
            self._values[key] = copy.deepcopy(value)

    def mutate(self, key: str, mutator: Mutator, default: Any = None) -> Any:
        with self._lock:
            current = copy.deepcopy(self._values.get(key, default))
            updated = mutator(current)
            if updated is None:
                self._values.pop(key, None)
            else:
                self._values[key] = copy.deepcopy(updated)
            return copy.deepcopy(updated)

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._values)


class SQLiteKeyValueStore:
    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize()

    @property
    def db_path(self) -> Path:
        return self._db_path

    @contextmanager
    def _connect(self, *, timeout: float = 5.0) -> Iterator[sqlite3.Connection]:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        connection = sqlite3.connect(self._db_path, timeout=timeout)
        try:
            yield connection
        finally:
            connection.close()

    def _initialize(self) -> None:
        with self._connect() as connection:
            connection.execute("PRAGMA journal_mode=WAL")
            connection.execute("PRAGMA synchronous=NORMAL")
            connection.execute(
                """
                CREATE TABLE IF NOT EXISTS kv_state (
                    key TEXT PRIMARY KEY,
                    value_json TEXT NOT NULL,
                    updated_at_utc TEXT NOT NULL
                )
                """
            )
            connection.commit()

    def get(self, key: str, default: Any = None) -> Any:
        with self._connect() as connection:
            row = connection.execute("SELECT value_json FROM kv_state WHERE key = ?", (key,)).fetchone()
        if row is None:
            return default
        return json.loads(row[0])

    def update(self, key: str, value: Any) -> None:
        with self._connect() as connection:
            self._write(connection, key, value)
            connection.commit()

    def mutate(self, key: str, mutator: Mutator, default: Any = None) -> Any:
        with self._connect() as connection:
            connection.execute("BEGIN IMMEDIATE")
            row = connection.execute("SELECT value_json FROM kv_state WHERE key = ?", (key,)).fetchone()
            current = json.loads(row[0]) if row is not None else copy.deepcopy(default)
            updated = mutator(current)
            self._write(connection, key, updated)
            connection.commit()
        return updated

    @staticmethod
    def _write(connection: sqlite3.Connection, key: str, value: Any) -> None:
        if value is None:
            connection.execute("DELETE FROM kv_state WHERE key = ?", (key,))
            return
        connection.execute(
            """
            INSERT INTO kv_state (key, value_json, updated_at_utc)
            VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value_json = excluded.value_json,
                updated_at_utc = excluded.updated_at_utc
            """,
            (
                key,
                json.dumps(value, separators=(",", ":"), sort_keys=True),
                datetime.now(tz=UTC).isoformat(),
            ),
        )

    def keys(self) -> list[str]:
        with self._connect() as connection:
            rows = connection.execute("SELECT key FROM kv_state ORDER BY key").fetchall()
        return [str(row[0]) for row in rows]
