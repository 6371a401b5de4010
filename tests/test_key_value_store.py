from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from binance_ticker_hub.state.store import InMemoryKeyValueStore, SQLiteKeyValueStore


def test_in_memory_store_returns_copies() -> None:
    store = InMemoryKeyValueStore()
    value = {"symbols": ["BTCUSDT"]}
    store.update("k", value)

    value["symbols"].append("ETHUSDT")
    fetched = store.get("k")
    fetched["symbols"].append("SOLUSDT")

    assert store.get("k") == {"symbols": ["BTCUSDT"]}
    assert store.get("missing", []) == []


def test_none_deletes_key() -> None:
    store = InMemoryKeyValueStore({"a": 1, "b": 2})
    store.update("a", None)

    assert store.keys() == ["b"]


def test_sqlite_store_upserts_and_persists(tmp_path: Path) -> None:
    db_path = tmp_path / "nested" / "state.sqlite"
    store = SQLiteKeyValueStore(db_path)
    store.update("ticker_hub.favorites", ["BTCUSDT"])
    store.update("ticker_hub.favorites", ["BTCUSDT", "ETHUSDT"])
    store.update("ticker_hub.price_alerts", {"BTCUSDT": []})

    reopened = SQLiteKeyValueStore(db_path)

    assert reopened.get("ticker_hub.favorites") == ["BTCUSDT", "ETHUSDT"]
    assert reopened.keys() == ["ticker_hub.favorites", "ticker_hub.price_alerts"]
    assert reopened.get("absent", "fallback") == "fallback"

    with sqlite3.connect(db_path) as connection:
        count = connection.execute("SELECT COUNT(*) FROM kv_state").fetchone()[0]
    assert count == 2


def test_sqlite_store_none_deletes(tmp_path: Path) -> None:
    store = SQLiteKeyValueStore(tmp_path / "state.sqlite")
    store.update("k", {"x": 1})
    store.update("k", None)

    assert store.get("k") is None
    assert store.keys() == []


def test_mutate_applies_to_the_current_stored_value(tmp_path: Path) -> None:
    first = SQLiteKeyValueStore(tmp_path / "state.sqlite")
    second = SQLiteKeyValueStore(tmp_path / "state.sqlite")
    first.update("symbols", ["BTCUSDT"])

    result = second.mutate("symbols", lambda current: [*current, "ETHUSDT"], [])

    assert result == ["BTCUSDT", "ETHUSDT"]
    assert first.get("symbols") == ["BTCUSDT", "ETHUSDT"]
    assert first.mutate("missing", lambda current: current + 1, 41) == 42
    assert first.mutate("symbols", lambda current: None) is None
    assert first.keys() == ["missing"]


def test_failed_mutate_leaves_value_unchanged(tmp_path: Path) -> None:
    store = SQLiteKeyValueStore(tmp_path / "state.sqlite")
    store.update("k", {"x": 1})

    def _explode(current: dict[str, int]) -> dict[str, int]:
        current["x"] = 2
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        store.mutate("k", _explode)

    assert store.get("k") == {"x": 1}


def test_in_memory_mutate_matches_sqlite_semantics() -> None:
    store = InMemoryKeyValueStore({"k": [1]})

    assert store.mutate("k", lambda current: [*current, 2]) == [1, 2]
    assert store.mutate("absent", lambda current: current, {"a": 1}) == {"a": 1}
    store.mutate("k", lambda current: None)

    assert store.keys() == ["absent"]
