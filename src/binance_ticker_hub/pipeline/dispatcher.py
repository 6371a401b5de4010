from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from binance_ticker_hub.core.models import PriceUpdate

logger = logging.getLogger(__name__)

UpdateConsumer = Callable[[PriceUpdate], None]
AlertConsumer = Callable[[str, float], None]


class UpdateDispatcher:
    """Synchronous fan-out of accepted updates.

    Update consumers run in registration order, then the single alert consumer
    runs with ``(symbol, numeric_price)``. If an update consumer raises, the
    consumers after it are skipped for that update only; the alert consumer
    still runs and the caller never sees the exception.
    """

    def __init__(self) -> None:
        self._consumers: tuple[UpdateConsumer, ...] = ()
        self._alert_consumer: AlertConsumer | None = None
        self._lock = threading.Lock()

    def on_update(self, consumer: UpdateConsumer) -> None:
        with self._lock:
            self._consumers = (*self._consumers, consumer)

    def remove_update_consumer(self, consumer: UpdateConsumer) -> None:
        with self._lock:
            self._consumers = tuple(item for item in self._consumers if item is not consumer)

    def on_alert_check(self, consumer: AlertConsumer | None) -> None:
        with self._lock:
            if self._alert_consumer is not None and consumer is not None:
                logger.debug("Replacing registered alert consumer")
            self._alert_consumer = consumer

    @property
    def consumer_count(self) -> int:
        return len(self._consumers)

    @property
    def has_alert_consumer(self) -> bool:
        return self._alert_consumer is not None

    def clear(self) -> None:
        with self._lock:
            self._consumers = ()
            self._alert_consumer = None

    def dispatch(self, update: PriceUpdate) -> None:
        with self._lock:
            consumers = self._consumers
            alert_consumer = self._alert_consumer

        for consumer in consumers:
            try:
                consumer(update)
            except Exception:
                logger.exception(
                    "Update consumer failed; skipping remaining consumers for this update",
                    extra={"symbol": update.symbol, "market": update.market.value},
                )
                break

        if alert_consumer is None:
            return
        try:
            alert_consumer(update.symbol, update.numeric_price)
        except Exception:
            logger.exception("Alert consumer failed", extra={"symbol": update.symbol})
