from __future__ import annotations

import dataclasses
import logging
import queue
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from binance_ticker_hub.core.errors import ValidationError
from binance_ticker_hub.core.models import PriceAlert
from binance_ticker_hub.core.validation import parse_target_price
from binance_ticker_hub.state.store import KeyValueStore

ALERTS_KEY = "ticker_hub.price_alerts"
DEFAULT_TOLERANCE = 0.001

logger = logging.getLogger(__name__)

AlertRecords = dict[str, list[dict[str, Any]]]
StoreEdit = Callable[[Any], AlertRecords]
AlertKey = tuple[str, float, str]


@dataclass(frozen=True, slots=True)
class AlertResponse:
    """User decision relayed back from the alert notification sink."""

    rearm_target: float | None = None

    @classmethod
    def dismiss(cls) -> AlertResponse:
        return cls()

    @classmethod
    def rearm(cls, target_price: float) -> AlertResponse:
        return cls(rearm_target=target_price)


AlertNotifier = Callable[[str, float, float], AlertResponse | None]


def _alert_key(alert: PriceAlert) -> AlertKey:
    return alert.symbol, alert.target_price, alert.created_at.isoformat()


def _record_key(record: Any) -> AlertKey | None:
    try:
        return str(record["symbol"]), float(record["targetPrice"]), str(record["createdAt"])
    except (KeyError, TypeError, ValueError):
        return None


def _as_records(current: Any) -> AlertRecords:
    return current if isinstance(current, dict) else {}


def _append(alert: PriceAlert) -> StoreEdit:
    def edit(current: Any) -> AlertRecords:
        records = _as_records(current)
        records.setdefault(alert.symbol, []).append(alert.to_record())
        return records

    return edit


def _drop(alert: PriceAlert) -> StoreEdit:
    key = _alert_key(alert)

    def edit(current: Any) -> AlertRecords:
        records = _as_records(current)
        remaining = [record for record in records.get(alert.symbol, []) if _record_key(record) != key]
        if remaining:
            records[alert.symbol] = remaining
        else:
            records.pop(alert.symbol, None)
        return records

    return edit


def _mark_inactive(alerts: list[PriceAlert]) -> StoreEdit:
    keys = {_alert_key(alert) for alert in alerts}

    def edit(current: Any) -> AlertRecords:
        records = _as_records(current)
        for symbol_records in records.values():
            for record in symbol_records:
                if _record_key(record) in keys:
                    record["isActive"] = False
        return records

    return edit


def _clear_symbol(symbol: str) -> StoreEdit:
    def edit(current: Any) -> AlertRecords:
        records = _as_records(current)
        records.pop(symbol, None)
        return records

    return edit


def _decode(stored: Any) -> dict[str, list[PriceAlert]]:
    alerts: dict[str, list[PriceAlert]] = {}
    for symbol, records in _as_records(stored).items():
        restored: list[PriceAlert] = []
        for record in records or []:
            try:
                restored.append(PriceAlert.from_record(record))
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping unreadable stored alert", extra={"symbol": symbol})
        if restored:
            alerts[symbol] = restored
    return alerts


class _PersistWorker:
    """Applies alert edits to the store on one background thread, in submission order."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._queue: queue.Queue[StoreEdit | None] = queue.Queue()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    def submit(self, edit: StoreEdit) -> None:
        with self._lock:
            if self._thread is None or not self._thread.is_alive():
                self._thread = threading.Thread(target=self._run, name="alert-persist", daemon=True)
                self._thread.start()
        self._queue.put(edit)

    def flush(self) -> None:
        if self._thread is not None:
            self._queue.join()

    def close(self, timeout: float = 5.0) -> None:
        with self._lock:
            thread = self._thread
            self._thread = None
        if thread is None or not thread.is_alive():
            return
        self._queue.put(None)
        thread.join(timeout=timeout)
        if thread.is_alive():
            logger.warning("Alert persistence worker did not stop in time")

    def _run(self) -> None:
        while True:
            edit = self._queue.get()
            try:
                if edit is None:
                    return
                self._store.mutate(ALERTS_KEY, edit, {})
            except Exception:
                logger.exception("Failed to persist price alert change")
            finally:
                self._queue.task_done()


class AlertEngine:
    """Price alerts keyed by symbol, evaluated against every dispatched price.

    An alert fires when ``abs(price - target) / target < tolerance``. Firing
    deactivates it before the notifier runs, so a price that lingers inside
    the band does not fire again. Alerts are never deleted on trigger; they
    stay in the map as inactive history until removed or cleared.

    Every store write is a keyed edit applied through ``store.mutate``, so
    alerts written by other processes sharing the store are preserved. Edits
    caused by a trigger are handed to a background worker; ``check_alerts``
    itself never touches the store. Call ``reload`` to pick up alerts added
    elsewhere and ``close`` to drain pending writes.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        notifier: AlertNotifier | None = None,
        tolerance: float = DEFAULT_TOLERANCE,
    ) -> None:
        if not 0 < tolerance < 1:
            raise ValueError(f"tolerance must be in (0, 1), got {tolerance}")
        self._store = store
        self._notifier = notifier
        self._tolerance = tolerance
        self._persister = _PersistWorker(store)
        self._lock = threading.RLock()
        self._alerts = _decode(store.get(ALERTS_KEY, {}))
        logger.info("Loaded price alerts for %d symbols", len(self._alerts))

    @property
    def tolerance(self) -> float:
        return self._tolerance

    def set_notifier(self, notifier: AlertNotifier | None) -> None:
        self._notifier = notifier

    def set_alert(self, symbol: str, target_price: float) -> PriceAlert:
        alert = PriceAlert(symbol=symbol, target_price=parse_target_price(target_price))
        self._write(_append(alert))
        with self._lock:
            self._alerts.setdefault(symbol, []).append(alert)
        logger.info("Price alert set: %s -> %s", symbol, alert.target_price)
        return dataclasses.replace(alert)

    def remove_alert(self, symbol: str, target_price: float) -> bool:
        alert = self._find_active(symbol, target_price)
        if alert is None:
            return False
        self._write(_drop(alert))
        with self._lock:
            alerts = self._alerts.get(symbol, [])
            self._alerts[symbol] = [item for item in alerts if item is not alert]
            if not self._alerts[symbol]:
                del self._alerts[symbol]
        logger.info("Price alert removed: %s -> %s", symbol, target_price)
        return True

    def deactivate(self, symbol: str, target_price: float) -> bool:
        alert = self._find_active(symbol, target_price)
        if alert is None:
            return False
        self._write(_mark_inactive([alert]))
        with self._lock:
            alert.active = False
        logger.info("Price alert deactivated: %s -> %s", symbol, target_price)
        return True

    def is_within_band(self, target_price: float, current_price: float) -> bool:
        return abs(current_price - target_price) / target_price < self._tolerance

    def check_alerts(self, symbol: str, current_price: float) -> list[PriceAlert]:
        with self._lock:
            alerts = self._alerts.get(symbol)
            if not alerts:
                return []
            triggered = [
                alert for alert in alerts if alert.active and self.is_within_band(alert.target_price, current_price)
            ]
            if not triggered:
                return []
            for alert in triggered:
                alert.active = False
            fired = [dataclasses.replace(alert) for alert in triggered]

        self._persister.submit(_mark_inactive(fired))
        for alert in fired:
            logger.info(
                "Price alert triggered: %s reached %s (current %s)",
                alert.symbol,
                alert.target_price,
                current_price,
            )
            self._notify(alert, current_price)
        return fired

    def get_alerts(self) -> dict[str, list[PriceAlert]]:
        with self._lock:
            return {symbol: [dataclasses.replace(alert) for alert in alerts] for symbol, alerts in self._alerts.items()}

    def get_active_alerts(self, symbol: str | None = None) -> list[PriceAlert]:
        with self._lock:
            if symbol is not None:
                candidates = self._alerts.get(symbol, [])
            else:
                candidates = [alert for alerts in self._alerts.values() for alert in alerts]
            return [dataclasses.replace(alert) for alert in candidates if alert.active]

    def clear_all(self) -> None:
        self._write(lambda current: {})
        with self._lock:
            self._alerts.clear()
        logger.info("All price alerts cleared")

    def clear_symbol(self, symbol: str) -> None:
        self._write(_clear_symbol(symbol))
        with self._lock:
            self._alerts.pop(symbol, None)
        logger.info("Price alerts cleared for %s", symbol)

    def reload(self) -> int:
        """Re-read the stored alerts, keeping local deactivations. Returns the number of active alerts."""
        self._persister.flush()
        restored = _decode(self._store.get(ALERTS_KEY, {}))
        with self._lock:
            fired = {_alert_key(alert) for alerts in self._alerts.values() for alert in alerts if not alert.active}
            for alerts in restored.values():
                for alert in alerts:
                    if _alert_key(alert) in fired:
                        alert.active = False
            self._alerts = restored
            return sum(1 for alerts in restored.values() for alert in alerts if alert.active)

    def flush(self) -> None:
        """Block until every trigger write submitted so far has been applied or logged as failed."""
        self._persister.flush()

    def close(self) -> None:
        self._persister.close()

    def _write(self, edit: StoreEdit) -> None:
        self._persister.flush()
        self._store.mutate(ALERTS_KEY, edit, {})

    def _find_active(self, symbol: str, target_price: float) -> PriceAlert | None:
        with self._lock:
            for alert in self._alerts.get(symbol, []):
                if alert.active and alert.target_price == target_price:
                    return alert
        return None

    def _notify(self, alert: PriceAlert, current_price: float) -> None:
        notifier = self._notifier
        if notifier is None:
            return
        try:
            response = notifier(alert.symbol, alert.target_price, current_price)
        except Exception:
            logger.exception("Alert notifier failed", extra={"symbol": alert.symbol})
            return

        if response is None or response.rearm_target is None:
            return
        try:
            rearmed = PriceAlert(symbol=alert.symbol, target_price=parse_target_price(response.rearm_target))
        except ValidationError as exc:
            logger.warning("Ignoring re-arm request for %s: %s", alert.symbol, exc)
            return
        with self._lock:
            self._alerts.setdefault(rearmed.symbol, []).append(rearmed)
        self._persister.submit(_append(rearmed))
        logger.info("Price alert re-armed: %s -> %s", rearmed.symbol, rearmed.target_price)
