from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SYMBOLS: tuple[str, ...] = (
    "BTCUSDT",
    "ETHUSDT",
    "BNBUSDT",
    "SOLUSDT",
    "ADAUSDT",
    "DOGEUSDT",
    "XRPUSDT",
    "LINKUSDT",
    "MATICUSDT",
    "AVAXUSDT",
    "DOTUSDT",
    "UNIUSDT",
    "LTCUSDT",
    "BCHUSDT",
    "FILUSDT",
)
DEFAULT_DISPLAY_SYMBOLS: tuple[str, ...] = ("BTCUSDT", "ETHUSDT", "BNBUSDT", "SOLUSDT", "ADAUSDT")


class Settings(BaseSettings):
    spot_websocket_base_url: str = Field(default="wss://stream.binance.com:9443/ws")
    derivative_websocket_base_url: str = Field(default="wss://fstream.binance.com/ws")
    ticker_stream: str = Field(default="!ticker@arr")

    max_reconnect_attempts: int = Field(default=5, ge=1)
    reconnect_delay_seconds: float = Field(default=5.0, ge=0)
    heartbeat_interval_seconds: float = Field(default=30.0, gt=0)
    read_timeout_seconds: float = Field(default=1.0, gt=0)

    alert_tolerance: float = Field(default=0.001, gt=0, lt=1)
    alert_reload_interval_seconds: float = Field(default=5.0, gt=0)

    ticker_scroll_interval_seconds: float = Field(default=1.5, gt=0)
    ticker_viewport_width: int = Field(default=80, ge=10)

    default_symbols: list[str] = Field(default_factory=lambda: list(DEFAULT_SYMBOLS))
    default_display_symbols: list[str] = Field(default_factory=lambda: list(DEFAULT_DISPLAY_SYMBOLS))

    state_db: Path = Field(default=Path("./state/ticker_hub.sqlite"))

    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_prefix="BTH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
