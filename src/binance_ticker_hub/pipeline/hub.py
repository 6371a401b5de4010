from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from binance_ticker_hub.alerts.engine import AlertEngine, AlertNotifier
from binance_ticker_hub.core.config import Settings
from binance_ticker_hub.core.enums import ConnectionState, Market
from binance_ticker_hub.core.errors import DecodeError, ExhaustedRetryError
from binance_ticker_hub.display.board import MarketBoard
from binance_ticker_hub.display.ticker import TickerAggregator
from binance_ticker_hub.pipeline.dispatcher import UpdateDispatcher
from binance_ticker_hub.pipeline.subscriptions import SubscriptionFilter
from binance_ticker_hub.sources.decoder import TickerDecoder
from binance_ticker_hub.sources.websocket import ConnectFactory, MarketStreamSupervisor, StateListener, stream_url_for
from binance_ticker_hub.state.favorites import FavoritesManager
from binance_ticker_hub.state.store import InMemoryKeyValueStore, KeyValueStore

logger = logging.getLogger(__name__)


class TickerHub:
    """Wires both market streams through decode, filter and dispatch to the consumers.

    Each supervisor delivers on its own thread; within a market updates keep
    feed order, across markets they interleave.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        store: KeyValueStore | None = None,
        alert_notifier: AlertNotifier | None = None,
        connect_factory: ConnectFactory | None = None,
        on_state_change: StateListener | None = None,
    ) -> None:
        self._settings = settings
        self._store = store if store is not None else InMemoryKeyValueStore()

        self._decoder = TickerDecoder()
        self._subscriptions = SubscriptionFilter()
        self._dispatcher = UpdateDispatcher()

        self._favorites = FavoritesManager(self._store)
        self._alerts = AlertEngine(self._store, notifier=alert_notifier, tolerance=settings.alert_tolerance)
        self._aggregator = TickerAggregator(
            self._store,
            default_symbols=settings.default_display_symbols,
            on_display_change=self._subscriptions.subscribe_many,
        )
        self._board = MarketBoard(favorites=self._favorites.get_favorites())

        self._favorites.on_change(self._on_favorites_changed)
        self._dispatcher.on_update(self._aggregator.update_price)
        self._dispatcher.on_update(self._board.update_price)
        self._dispatcher.on_alert_check(self._alerts.check_alerts)

        base_urls = {
            Market.SPOT: settings.spot_websocket_base_url,
            Market.DERIVATIVE: settings.derivative_websocket_base_url,
        }
        self._supervisors: dict[Market, MarketStreamSupervisor] = {
            market: MarketStreamSupervisor(
                market=market,
                url=stream_url_for(base_url, settings.ticker_stream),
                on_message=self.ingest_batch,
                max_reconnect_attempts=settings.max_reconnect_attempts,
                reconnect_delay_seconds=settings.reconnect_delay_seconds,
                heartbeat_interval_seconds=settings.heartbeat_interval_seconds,
                read_timeout_seconds=settings.read_timeout_seconds,
                connect_factory=connect_factory,
                on_state_change=on_state_change,
            )
            for market, base_url in base_urls.items()
        }

        self._subscriptions.subscribe_many(settings.default_symbols)
        self._subscriptions.subscribe_many(self._favorites.get_favorites())
        self._subscriptions.subscribe_many(self._aggregator.display_symbols())

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def subscriptions(self) -> SubscriptionFilter:
        return self._subscriptions

    @property
    def dispatcher(self) -> UpdateDispatcher:
        return self._dispatcher

    @property
    def alerts(self) -> AlertEngine:
        return self._alerts

    @property
    def aggregator(self) -> TickerAggregator:
        return self._aggregator

    @property
    def board(self) -> MarketBoard:
        return self._board

    @property
    def favorites(self) -> FavoritesManager:
        return self._favorites

    def supervisor(self, market: Market) -> MarketStreamSupervisor:
        return self._supervisors[market]

    def connect(self) -> None:
        for supervisor in self._supervisors.values():
            supervisor.connect()

    def disconnect(self) -> None:
        for supervisor in self._supervisors.values():
            supervisor.disconnect()

    def close(self) -> None:
        self.disconnect()
        self._dispatcher.clear()
        self._alerts.close()

    def connection_states(self) -> dict[Market, ConnectionState]:
        return {market: supervisor.state for market, supervisor in self._supervisors.items()}

    def failures(self) -> list[ExhaustedRetryError]:
        return [supervisor.failure for supervisor in self._supervisors.values() if supervisor.failure is not None]

    def subscribe(self, symbol: str) -> None:
        self._subscriptions.subscribe(symbol)

    def unsubscribe(self, symbol: str) -> None:
        self._subscriptions.unsubscribe(symbol)

    def set_display_symbols(self, symbols: Iterable[str]) -> list[str]:
        return self._aggregator.set_display_symbols(symbols)

    def add_favorite(self, symbol: str) -> bool:
        added = self._favorites.add_favorite(symbol)
        self._subscriptions.subscribe(symbol)
        return added

    def remove_favorite(self, symbol: str) -> bool:
        return self._favorites.remove_favorite(symbol)

    def ingest_batch(self, market: Market, raw: str | bytes | list[Any]) -> int:
        """Decode one feed message and dispatch the subscribed entries. Returns the number dispatched."""
        try:
            updates = self._decoder.decode(raw, market)
        except DecodeError as exc:
            logger.warning("Dropping %s ticker batch: %s", market.value, exc)
            return 0

        dispatched = 0
        for update in updates:
            if not self._subscriptions.accepts(update):
                continue
            self._dispatcher.dispatch(update)
            dispatched += 1
        return dispatched

    def _on_favorites_changed(self) -> None:
        favorites = self._favorites.get_favorites()
        self._subscriptions.subscribe_many(favorites)
        self._board.set_favorites(favorites)
