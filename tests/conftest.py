from __future__ import annotations

from pathlib import Path

import pytest

from binance_ticker_hub.core.config import Settings


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        default_symbols=[],
        default_display_symbols=["BTCUSDT", "ETHUSDT"],
        reconnect_delay_seconds=0.0,
        read_timeout_seconds=0.05,
        state_db=tmp_path / "state" / "ticker_hub.sqlite",
    )
