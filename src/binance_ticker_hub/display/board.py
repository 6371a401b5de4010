from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import dataclass

from binance_ticker_hub.core.enums import Market
from binance_ticker_hub.core.models import PriceUpdate

FAVORITES_TITLE = "My Favorites"
SPOT_TITLE = "Spot Markets"
DERIVATIVE_TITLE = "Futures Markets"

HIGH_VOLATILITY_PCT = 5.0
MEDIUM_VOLATILITY_PCT = 2.0


def volatility_level(percent_change: float) -> str:
    magnitude = abs(percent_change)
    if magnitude > HIGH_VOLATILITY_PCT:
        return "High"
    if magnitude > MEDIUM_VOLATILITY_PCT:
        return "Medium"
    return "Low"


def _sort_key(update: PriceUpdate) -> tuple[float, str]:
    return -abs(update.percent_change), update.symbol


@dataclass(frozen=True, slots=True)
class BoardSection:
    title: str
    entries: tuple[PriceUpdate, ...]

    @property
    def gainers(self) -> int:
        return sum(1 for entry in self.entries if entry.percent_change > 0)

    @property
    def losers(self) -> int:
        return sum(1 for entry in self.entries if entry.percent_change < 0)

    @property
    def summary(self) -> str:
        return f"{len(self.entries)} pairs • ↗{self.gainers} ↘{self.losers}"


class MarketBoard:
    """Categorized list view: favorites, spot and futures, most volatile first."""

    def __init__(self, favorites: Iterable[str] = ()) -> None:
        self._latest: dict[tuple[str, Market], PriceUpdate] = {}
        self._favorites: frozenset[str] = frozenset(favorites)
        self._lock = threading.RLock()

    def update_price(self, update: PriceUpdate) -> None:
        with self._lock:
            self._latest[update.key] = update

    def set_favorites(self, favorites: Iterable[str]) -> None:
        with self._lock:
            self._favorites = frozenset(favorites)

    def get(self, symbol: str, market: Market) -> PriceUpdate | None:
        with self._lock:
            return self._latest.get((symbol, market))

    def clear(self) -> None:
        with self._lock:
            self._latest.clear()

    def sections(self) -> list[BoardSection]:
        with self._lock:
            updates = list(self._latest.values())
            favorites = self._favorites

        spot = sorted((item for item in updates if item.market is Market.SPOT), key=_sort_key)
        derivative = sorted((item for item in updates if item.market is Market.DERIVATIVE), key=_sort_key)
        favorite_entries = [item for item in spot if item.symbol in favorites]

        sections = [BoardSection(FAVORITES_TITLE, tuple(favorite_entries))]
        if spot:
            sections.append(BoardSection(SPOT_TITLE, tuple(spot)))
        if derivative:
            sections.append(BoardSection(DERIVATIVE_TITLE, tuple(derivative)))
        return sections
