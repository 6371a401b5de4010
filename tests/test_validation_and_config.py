from __future__ import annotations

from pathlib import Path

import pytest

from binance_ticker_hub.core.config import DEFAULT_SYMBOLS, Settings
from binance_ticker_hub.core.errors import ValidationError
from binance_ticker_hub.core.validation import (
    normalize_symbol,
    parse_symbol_list,
    parse_target_price,
    resolve_display_preset,
)


def test_parse_symbol_list_trims_uppercases_and_dedupes() -> None:
    assert parse_symbol_list(" btcusdt, ETHUSDT ,,btcUSDT, solusdt") == ["BTCUSDT", "ETHUSDT", "SOLUSDT"]


@pytest.mark.parametrize("raw", ["", " , ,", ","])
def test_parse_symbol_list_rejects_empty_input(raw: str) -> None:
    with pytest.raises(ValidationError):
        parse_symbol_list(raw)


def test_normalize_symbol() -> None:
    assert normalize_symbol("  ethusdt ") == "ETHUSDT"
    with pytest.raises(ValidationError):
        normalize_symbol("   ")


@pytest.mark.parametrize("raw", ["abc", "nan", "inf", "-1", "0", ""])
def test_parse_target_price_rejects_invalid_prices(raw: str) -> None:
    with pytest.raises(ValidationError):
        parse_target_price(raw)


def test_parse_target_price_accepts_positive_numbers() -> None:
    assert parse_target_price("50000") == 50_000.0
    assert parse_target_price(" 0.00012 ") == 0.00012


def test_presets_resolve_case_insensitively() -> None:
    assert resolve_display_preset("Hot") == ["BTCUSDT", "ETHUSDT", "DOGEUSDT", "SHIBUSDT", "PEPEUSDT"]
    assert resolve_display_preset("recommended")[0] == "BTCUSDT"
    with pytest.raises(ValidationError):
        resolve_display_preset("moon")


def test_settings_defaults(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    for name in ("BTH_MAX_RECONNECT_ATTEMPTS", "BTH_ALERT_TOLERANCE", "BTH_STATE_DB"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings()

    assert settings.max_reconnect_attempts == 5
    assert settings.reconnect_delay_seconds == 5.0
    assert settings.heartbeat_interval_seconds == 30.0
    assert settings.alert_tolerance == 0.001
    assert settings.ticker_scroll_interval_seconds == 1.5
    assert settings.default_symbols == list(DEFAULT_SYMBOLS)
    assert settings.state_db == Path("./state/ticker_hub.sqlite")


def test_settings_read_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("BTH_MAX_RECONNECT_ATTEMPTS", "3")
    monkeypatch.setenv("BTH_ALERT_TOLERANCE", "0.005")
    monkeypatch.setenv("BTH_DEFAULT_DISPLAY_SYMBOLS", '["DOGEUSDT"]')

    settings = Settings()

    assert settings.max_reconnect_attempts == 3
    assert settings.alert_tolerance == 0.005
    assert settings.default_display_symbols == ["DOGEUSDT"]
