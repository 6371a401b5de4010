from __future__ import annotations

import logging
import threading
from collections.abc import Iterable

from binance_ticker_hub.core.models import PriceUpdate

logger = logging.getLogger(__name__)


class SubscriptionFilter:
    """Market-agnostic set of symbols whose updates are allowed through.

    The upstream feed carries every instrument, so this is the only gate on
    dispatch volume. An empty set forwards nothing.
    """

    def __init__(self, symbols: Iterable[str] = ()) -> None:
        self._symbols: set[str] = {symbol.upper() for symbol in symbols}
        self._lock = threading.RLock()

    def subscribe(self, symbol: str) -> None:
        normalized = symbol.upper()
        with self._lock:
            if normalized in self._symbols:
                return
            self._symbols.add(normalized)
        logger.info("Subscribed %s", normalized)

    def subscribe_many(self, symbols: Iterable[str]) -> None:
        for symbol in symbols:
            self.subscribe(symbol)

    def unsubscribe(self, symbol: str) -> None:
        normalized = symbol.upper()
        with self._lock:
            if normalized not in self._symbols:
                return
            self._symbols.discard(normalized)
        logger.info("Unsubscribed %s", normalized)

    def clear(self) -> None:
        with self._lock:
            self._symbols.clear()

    def accepts(self, update: PriceUpdate) -> bool:
        with self._lock:
            return update.symbol in self._symbols

    def is_subscribed(self, symbol: str) -> bool:
        with self._lock:
            return symbol.upper() in self._symbols

    def symbols(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._symbols)

    def __len__(self) -> int:
        with self._lock:
            return len(self._symbols)
