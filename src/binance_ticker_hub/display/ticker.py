from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable

from binance_ticker_hub.core.config import DEFAULT_DISPLAY_SYMBOLS
from binance_ticker_hub.core.models import PriceUpdate
from binance_ticker_hub.state.store import KeyValueStore

DISPLAY_SYMBOLS_KEY = "ticker_hub.display_symbols"
SEPARATOR = "  •  "
UP_ARROW = "↗"
DOWN_ARROW = "↘"
PLACEHOLDER = "Connecting..."

logger = logging.getLogger(__name__)

DisplayChangeListener = Callable[[list[str]], None]
FrameSink = Callable[[str], None]


def format_price(price: float) -> str:
    if price >= 1000:
        return f"{price:,.2f}"
    if price >= 1:
        return f"{price:.4f}"
    return f"{price:.6f}"


def format_entry(update: PriceUpdate) -> str:
    arrow = UP_ARROW if update.percent_change >= 0 else DOWN_ARROW
    return f"{update.symbol}: ${format_price(update.numeric_price)} {arrow}{update.percent_change:.2f}%"


def scroll_window(text: str, position: int, width: int) -> str:
    """Return the ``width``-character window of ``text`` starting at ``position``, wrapping around."""
    if len(text) <= width:
        return text
    start = position % len(text)
    doubled = text + text
    return doubled[start : start + width]


class TickerAggregator:
    """Latest price per display symbol, rendered as one scrolling ticker string.

    The display set is ordered and persisted and may be empty, in which case
    the text stays empty. Changing it prunes entries that left the set and reports the new set to ``on_display_change`` so the owner
    can keep every display symbol subscribed.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        default_symbols: Iterable[str] = DEFAULT_DISPLAY_SYMBOLS,
        on_display_change: DisplayChangeListener | None = None,
    ) -> None:
        self._store = store
        self._on_display_change = on_display_change
        self._latest: dict[str, PriceUpdate] = {}
        self._text = ""
        self._lock = threading.RLock()

        saved = store.get(DISPLAY_SYMBOLS_KEY)
        if isinstance(saved, list):
            self._display_symbols = _dedupe(str(symbol) for symbol in saved)
        else:
            self._display_symbols = _dedupe(default_symbols)

    @property
    def text(self) -> str:
        with self._lock:
            return self._text

    def display_symbols(self) -> list[str]:
        with self._lock:
            return list(self._display_symbols)

    def set_display_symbols(self, symbols: Iterable[str]) -> list[str]:
        normalized = _dedupe(symbols)
        with self._lock:
            self._display_symbols = normalized
            self._latest = {symbol: update for symbol, update in self._latest.items() if symbol in normalized}
            self._store.update(DISPLAY_SYMBOLS_KEY, list(normalized))
            self._rebuild()
        logger.info("Display symbols set to %s", ", ".join(normalized))

        if self._on_display_change is not None:
            self._on_display_change(list(normalized))
        return list(normalized)

    def update_price(self, update: PriceUpdate) -> None:
        with self._lock:
            if update.symbol not in self._display_symbols:
                return
            self._latest[update.symbol] = update
            self._rebuild()

    def latest(self) -> dict[str, PriceUpdate]:
        with self._lock:
            return dict(self._latest)

    def tooltip(self) -> str:
        with self._lock:
            updates = sorted(self._latest.values(), key=lambda item: item.symbol)
        if not updates:
            return "No prices received yet"
        lines = [
            f"{update.symbol}: ${format_price(update.numeric_price)} "
            f"({'+' if update.percent_change >= 0 else ''}{update.percent_change:.2f}%)"
            for update in updates
        ]
        return "Real-time Crypto Prices:\n" + "\n".join(lines)

    def _rebuild(self) -> None:
        if not self._latest:
            self._text = ""
            return
        entries = [format_entry(self._latest[symbol]) for symbol in sorted(self._latest)]
        self._text = SEPARATOR.join(entries) + SEPARATOR


class ScrollingTicker:
    """Advances a read position over the aggregator text on its own timer."""

    def __init__(
        self,
        aggregator: TickerAggregator,
        *,
        width: int = 80,
        interval_seconds: float = 1.5,
        on_frame: FrameSink | None = None,
    ) -> None:
        self._aggregator = aggregator
        self._width = width
        self._interval_seconds = interval_seconds
        self._on_frame = on_frame
        self._position = 0
        self._frame = PLACEHOLDER
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def position(self) -> int:
        with self._lock:
            return self._position

    @property
    def frame(self) -> str:
        with self._lock:
            return self._frame

    def tick(self) -> str:
        text = self._aggregator.text
        with self._lock:
            if not text:
                self._position = 0
                self._frame = PLACEHOLDER
            else:
                self._frame = scroll_window(text, self._position, self._width)
                self._position = (self._position + 1) % len(text)
            frame = self._frame
        if self._on_frame is not None:
            self._on_frame(frame)
        return frame

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name="ticker-scroll", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=5.0)
            self._thread = None

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            self.tick()
            if self._stop_event.wait(self._interval_seconds):
                break


def _dedupe(symbols: Iterable[str]) -> list[str]:
    ordered: list[str] = []
    for symbol in symbols:
        normalized = symbol.strip().upper()
        if normalized and normalized not in ordered:
            ordered.append(normalized)
    return ordered
