from __future__ import annotations

import json
from typing import Any

from stream_fakes import FakeSocket, ScriptedConnector, wait_for

from binance_ticker_hub.alerts.engine import AlertResponse
from binance_ticker_hub.core.config import Settings
from binance_ticker_hub.core.enums import ConnectionState, Market
from binance_ticker_hub.pipeline.hub import TickerHub
from binance_ticker_hub.sources.websocket import stream_url_for
from binance_ticker_hub.state.store import InMemoryKeyValueStore, SQLiteKeyValueStore


def _batch(*entries: tuple[str, str, str]) -> str:
    return json.dumps([{"e": "24hrTicker", "s": symbol, "c": price, "P": change} for symbol, price, change in entries])


class _RoutedConnector:
    def __init__(self, routes: dict[str, ScriptedConnector]) -> None:
        self._routes = routes

    def __call__(self, url: str, **kwargs: Any) -> Any:
        return self._routes[url](url, **kwargs)


def test_spot_update_reaches_ticker_board_and_alert(settings: Settings) -> None:
    notifications: list[tuple[str, float, float]] = []

    def _notify(symbol: str, target: float, price: float) -> AlertResponse:
        notifications.append((symbol, target, price))
        return AlertResponse.dismiss()

    hub = TickerHub(settings, store=InMemoryKeyValueStore(), alert_notifier=_notify)
    hub.alerts.set_alert("BTCUSDT", 50_000.0)

    dispatched = hub.ingest_batch(Market.SPOT, _batch(("BTCUSDT", "50000.00000000", "2.50")))

    assert dispatched == 1
    assert hub.aggregator.text == "BTCUSDT: $50,000.00 ↗2.50%  •  "
    assert hub.board.get("BTCUSDT", Market.SPOT).price == "50000.00000000"
    assert notifications == [("BTCUSDT", 50_000.0, 50_000.0)]
    assert hub.alerts.get_active_alerts("BTCUSDT") == []

    hub.ingest_batch(Market.SPOT, _batch(("BTCUSDT", "50000.00000000", "2.50")))
    assert len(notifications) == 1
    hub.close()


def test_unsubscribed_symbols_never_reach_consumers(settings: Settings) -> None:
    hub = TickerHub(settings)
    seen: list[str] = []
    hub.dispatcher.on_update(lambda update: seen.append(update.symbol))

    hub.ingest_batch(Market.SPOT, _batch(("DOGEUSDT", "0.1", "1.0"), ("ETHUSDT", "3000", "1.0")))
    hub.unsubscribe("ETHUSDT")
    hub.ingest_batch(Market.SPOT, _batch(("ETHUSDT", "3001", "1.1")))

    assert seen == ["ETHUSDT"]
    assert hub.board.get("DOGEUSDT", Market.SPOT) is None


def test_start_up_subscribes_defaults_favorites_and_display_symbols(settings: Settings) -> None:
    store = InMemoryKeyValueStore({"ticker_hub.favorites": ["LINKUSDT"]})
    hub = TickerHub(settings.model_copy(update={"default_symbols": ["XRPUSDT"]}), store=store)

    assert hub.subscriptions.symbols() == frozenset({"XRPUSDT", "LINKUSDT", "BTCUSDT", "ETHUSDT"})


def test_favorite_and_display_changes_update_subscriptions(settings: Settings) -> None:
    hub = TickerHub(settings)

    hub.add_favorite("SOLUSDT")
    hub.set_display_symbols(["ADAUSDT"])
    hub.ingest_batch(Market.SPOT, _batch(("SOLUSDT", "150", "6.0"), ("ADAUSDT", "0.5", "-1.0")))

    assert hub.subscriptions.is_subscribed("SOLUSDT")
    assert hub.subscriptions.is_subscribed("ADAUSDT")
    favorites_section = hub.board.sections()[0]
    assert [entry.symbol for entry in favorites_section.entries] == ["SOLUSDT"]
    assert hub.aggregator.text.startswith("ADAUSDT: $0.500000 ↘-1.00%")


def test_malformed_batch_is_dropped(settings: Settings) -> None:
    hub = TickerHub(settings)

    assert hub.ingest_batch(Market.SPOT, "{not json") == 0
    assert hub.ingest_batch(Market.DERIVATIVE, '{"s": "BTCUSDT"}') == 0
    assert hub.aggregator.text == ""


def test_hub_streams_both_markets_into_the_board(settings: Settings) -> None:
    spot = ScriptedConnector([FakeSocket([_batch(("BTCUSDT", "50000", "2.5"))])])
    futures = ScriptedConnector([FakeSocket([_batch(("BTCUSDT", "49990", "-0.5"), ("ETHUSDT", "3000", "1.0"))])])
    connector = _RoutedConnector(
        {
            stream_url_for(settings.spot_websocket_base_url, settings.ticker_stream): spot,
            stream_url_for(settings.derivative_websocket_base_url, settings.ticker_stream): futures,
        }
    )
    hub = TickerHub(settings, store=SQLiteKeyValueStore(settings.state_db), connect_factory=connector)

    hub.connect()
    try:
        assert wait_for(lambda: hub.board.get("ETHUSDT", Market.DERIVATIVE) is not None)
        assert wait_for(lambda: hub.board.get("BTCUSDT", Market.SPOT) is not None)
        assert wait_for(lambda: set(hub.connection_states().values()) == {ConnectionState.OPEN})
    finally:
        hub.close()

    assert hub.board.get("BTCUSDT", Market.DERIVATIVE).percent_change == -0.5
    assert set(hub.connection_states().values()) == {ConnectionState.IDLE}
    assert hub.failures() == []
    assert spot.urls == ["wss://stream.binance.com:9443/ws/!ticker@arr"]
    assert futures.urls == ["wss://fstream.binance.com/ws/!ticker@arr"]


def test_close_persists_triggered_alerts(settings: Settings) -> None:
    store = SQLiteKeyValueStore(settings.state_db)
    hub = TickerHub(settings, store=store)
    hub.alerts.set_alert("ETHUSDT", 3_000.0)

    hub.ingest_batch(Market.DERIVATIVE, _batch(("ETHUSDT", "3000.5", "0.1")))
    hub.close()

    assert store.get("ticker_hub.price_alerts")["ETHUSDT"][0]["isActive"] is False


def test_empty_display_set_keeps_ticker_blank(settings: Settings) -> None:
    hub = TickerHub(settings)

    assert hub.set_display_symbols([]) == []
    hub.ingest_batch(Market.SPOT, _batch(("BTCUSDT", "50000", "1.0")))

    assert hub.aggregator.text == ""
    assert hub.board.get("BTCUSDT", Market.SPOT) is not None
