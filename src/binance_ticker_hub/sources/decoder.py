from __future__ import annotations

import json
import math
from typing import Any

from binance_ticker_hub.core.enums import Market
from binance_ticker_hub.core.errors import DecodeError
from binance_ticker_hub.core.models import PriceUpdate

PRICE_DECIMALS = 8


def _coerce_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        parsed = float(value)
    elif isinstance(value, str):
        normalized = value.strip()
        if normalized == "":
            return None
        try:
            parsed = float(normalized)
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(parsed):
        return None
    return parsed


class TickerDecoder:
    """Turn ``!ticker@arr`` payloads into ``PriceUpdate`` records.

    The batch itself must be a JSON array; anything else raises ``DecodeError``.
    Entries inside a valid batch that lack a symbol, last price (``c``) or
    24h percent change (``P``) are skipped without affecting the rest.
    """

    def decode(self, raw: str | bytes | list[Any], market: Market) -> list[PriceUpdate]:
        batch = self._load(raw)
        updates: list[PriceUpdate] = []
        for entry in batch:
            update = self.decode_entry(entry, market)
            if update is not None:
                updates.append(update)
        return updates

    @staticmethod
    def decode_entry(entry: Any, market: Market) -> PriceUpdate | None:
        if not isinstance(entry, dict):
            return None

        symbol = entry.get("s")
        if not isinstance(symbol, str) or symbol.strip() == "":
            return None

        price = _coerce_float(entry.get("c"))
        percent_change = _coerce_float(entry.get("P"))
        if price is None or percent_change is None or price < 0:
            return None

        return PriceUpdate(
            symbol=symbol.strip().upper(),
            price=f"{price:.{PRICE_DECIMALS}f}",
            percent_change=percent_change,
            market=market,
        )

    @staticmethod
    def _load(raw: str | bytes | list[Any]) -> list[Any]:
        if isinstance(raw, list):
            return raw

        try:
            text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
            message = json.loads(text)
        except (UnicodeDecodeError, json.JSONDecodeError, TypeError) as exc:
            raise DecodeError(f"ticker batch is not valid JSON: {exc}") from exc

        if not isinstance(message, list):
            raise DecodeError(f"ticker batch must be a JSON array, got {type(message).__name__}")
        return message
