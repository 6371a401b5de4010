from __future__ import annotations

import json

import pytest

from binance_ticker_hub.core.enums import Market
from binance_ticker_hub.core.errors import DecodeError
from binance_ticker_hub.core.models import PriceUpdate
from binance_ticker_hub.sources.decoder import TickerDecoder


def test_decoder_normalizes_binance_ticker_entry() -> None:
    raw = json.dumps([{"e": "24hrTicker", "s": "BTCUSDT", "c": "50000.00000000", "P": "2.50", "v": "10"}])

    updates = TickerDecoder().decode(raw, Market.SPOT)

    assert updates == [
        PriceUpdate(symbol="BTCUSDT", price="50000.00000000", percent_change=2.5, market=Market.SPOT)
    ]


def test_decoder_pads_price_to_eight_decimals_and_keeps_sign() -> None:
    raw = b'[{"s": "PEPEUSDT", "c": "0.0000123", "P": "-7.125"}, {"s": "ETHUSDT", "c": 3000.5, "P": 0}]'

    updates = TickerDecoder().decode(raw, Market.DERIVATIVE)

    assert [update.price for update in updates] == ["0.00001230", "3000.50000000"]
    assert [update.percent_change for update in updates] == [-7.125, 0.0]
    assert all(update.market is Market.DERIVATIVE for update in updates)


def test_decoder_skips_malformed_entries_but_keeps_valid_ones() -> None:
    batch = [
        {"s": "BTCUSDT", "c": "50000", "P": "1.0"},
        {"s": "", "c": "1", "P": "1"},
        {"c": "1", "P": "1"},
        {"s": "ETHUSDT", "c": "not-a-number", "P": "1"},
        {"s": "BNBUSDT", "c": "600"},
        {"s": "SOLUSDT", "c": "NaN", "P": "1"},
        {"s": "ADAUSDT", "c": "-1", "P": "1"},
        "garbage",
        None,
        {"s": "XRPUSDT", "c": "0.5", "P": "-0.3"},
    ]

    updates = TickerDecoder().decode(json.dumps(batch), Market.SPOT)

    assert [update.symbol for update in updates] == ["BTCUSDT", "XRPUSDT"]


@pytest.mark.parametrize("raw", ['{"s": "BTCUSDT"}', "not json", b"\xff\xfe", '"[]"'])
def test_decoder_rejects_batches_that_are_not_arrays(raw: str | bytes) -> None:
    with pytest.raises(DecodeError):
        TickerDecoder().decode(raw, Market.SPOT)


def test_decoder_accepts_already_parsed_batches() -> None:
    updates = TickerDecoder().decode([{"s": "btcusdt", "c": "1", "P": "0.1"}], Market.SPOT)

    assert updates[0].symbol == "BTCUSDT"
    assert updates[0].numeric_price == 1.0
    assert updates[0].key == ("BTCUSDT", Market.SPOT)
