from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosedOK, WebSocketException

from binance_ticker_hub.core.enums import ConnectionState, Market
from binance_ticker_hub.core.errors import ExhaustedRetryError, TransportError

TICKER_ARRAY_STREAM = "!ticker@arr"
MAX_MESSAGE_BYTES = 2**22

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Market, str | bytes], None]
StateListener = Callable[[Market, ConnectionState], None]
ConnectFactory = Callable[..., AbstractAsyncContextManager[Any]]


def stream_url_for(base_url: str, stream_name: str = TICKER_ARRAY_STREAM) -> str:
    base = base_url.rstrip("/")
    if base.endswith("/ws"):
        return f"{base}/{stream_name}"
    if base.endswith("/stream"):
        return f"{base}?streams={stream_name}"
    return f"{base}/ws/{stream_name}"


class MarketStreamSupervisor:
    """Owns one market's stream connection and its reconnect state machine.

    ``IDLE -> CONNECTING -> OPEN -> (CLOSED | ERRORED) -> RECONNECTING -> CONNECTING ...``

    Every drop schedules a reconnect after a fixed delay. Once
    ``max_reconnect_attempts`` reconnects have been spent without reaching
    ``OPEN`` the supervisor enters ``FAILED`` and stops; only ``connect()``
    leaves that state. Reaching ``OPEN`` resets the attempt counter.
    Heartbeat pings are sent by the websocket client every
    ``heartbeat_interval_seconds``; a missed pong closes the socket, which
    takes the same reconnect path.
    """

    def __init__(
        self,
        *,
        market: Market,
        url: str,
        on_message: MessageHandler,
        max_reconnect_attempts: int = 5,
        reconnect_delay_seconds: float = 5.0,
        heartbeat_interval_seconds: float = 30.0,
        read_timeout_seconds: float = 1.0,
        connect_factory: ConnectFactory | None = None,
        on_state_change: StateListener | None = None,
    ) -> None:
        self._market = market
        self._url = url
        self._on_message = on_message
        self._max_reconnect_attempts = max(1, max_reconnect_attempts)
        self._reconnect_delay_seconds = max(0.0, reconnect_delay_seconds)
        self._heartbeat_interval_seconds = heartbeat_interval_seconds
        self._read_timeout_seconds = read_timeout_seconds
        self._connect_factory: ConnectFactory = connect_factory or websockets.connect
        self._on_state_change = on_state_change

        self._state = ConnectionState.IDLE
        self._reconnect_attempts = 0
        self._failure: ExhaustedRetryError | None = None
        self._state_lock = threading.RLock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def market(self) -> Market:
        return self._market

    @property
    def url(self) -> str:
        return self._url

    @property
    def state(self) -> ConnectionState:
        with self._state_lock:
            return self._state

    @property
    def reconnect_attempts(self) -> int:
        with self._state_lock:
            return self._reconnect_attempts

    @property
    def failure(self) -> ExhaustedRetryError | None:
        with self._state_lock:
            return self._failure

    @property
    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def connect(self) -> None:
        with self._state_lock:
            if self._thread is not None and self._thread.is_alive():
                return
            stop_event = threading.Event()
            self._stop_event = stop_event
            self._reconnect_attempts = 0
            self._failure = None
            self._thread = threading.Thread(
                target=self._run_loop,
                args=(stop_event,),
                name=f"ws-{self._market.value}",
                daemon=True,
            )
            thread = self._thread
        thread.start()

    def disconnect(self, timeout: float = 5.0) -> None:
        with self._state_lock:
            self._stop_event.set()
            thread = self._thread
            self._thread = None

        if thread is None:
            return
        if thread is not threading.current_thread():
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning("Stream worker did not stop in time", extra={"market": self._market.value})
        self._set_state(ConnectionState.IDLE)
        logger.info("%s stream disconnected", self._market.value)

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the worker exits on its own. Returns True if it did."""
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout=timeout)
        return not thread.is_alive()

    def _run_loop(self, stop_event: threading.Event) -> None:
        with asyncio.Runner() as runner:
            while not stop_event.is_set():
                self._set_state(ConnectionState.CONNECTING, stop_event)
                try:
                    runner.run(self._run_once(stop_event))
                except TransportError as exc:
                    logger.warning("%s", exc, extra={"market": self._market.value, "url": self._url})
                    self._set_state(ConnectionState.ERRORED, stop_event)
                except Exception:
                    logger.exception("Stream worker failed", extra={"market": self._market.value, "url": self._url})
                    self._set_state(ConnectionState.ERRORED, stop_event)
                else:
                    self._set_state(ConnectionState.CLOSED, stop_event)

                if stop_event.is_set():
                    break
                if not self._schedule_reconnect(stop_event):
                    break
                if stop_event.wait(self._reconnect_delay_seconds):
                    break

    async def _run_once(self, stop_event: threading.Event) -> None:
        try:
            async with self._connect_factory(
                self._url,
                ping_interval=self._heartbeat_interval_seconds,
                ping_timeout=self._heartbeat_interval_seconds,
                close_timeout=5,
                max_size=MAX_MESSAGE_BYTES,
            ) as websocket:
                self._mark_open(stop_event)

                while not stop_event.is_set():
                    try:
                        payload = await asyncio.wait_for(websocket.recv(), timeout=self._read_timeout_seconds)
                    except TimeoutError:
                        continue

                    if stop_event.is_set():
                        break
                    self._on_message(self._market, payload)
        except ConnectionClosedOK:
            return
        except (OSError, TimeoutError, WebSocketException) as exc:
            raise TransportError(f"{self._market.value} stream transport error: {exc!r}") from exc

    def _mark_open(self, stop_event: threading.Event) -> None:
        with self._state_lock:
            if stop_event.is_set():
                return
            self._reconnect_attempts = 0
        self._set_state(ConnectionState.OPEN, stop_event)
        logger.info("%s stream connected", self._market.value, extra={"url": self._url})

    def _schedule_reconnect(self, stop_event: threading.Event) -> bool:
        with self._state_lock:
            if stop_event.is_set():
                return False
            if self._reconnect_attempts >= self._max_reconnect_attempts:
                self._failure = ExhaustedRetryError(self._market, self._reconnect_attempts)
                failure = self._failure
                attempt = None
            else:
                self._reconnect_attempts += 1
                attempt = self._reconnect_attempts
                failure = None

        if failure is not None:
            self._set_state(ConnectionState.FAILED, stop_event)
            logger.error("%s", failure, extra={"market": self._market.value})
            return False

        self._set_state(ConnectionState.RECONNECTING, stop_event)
        logger.warning(
            "Reconnecting %s stream in %.1fs (attempt %d/%d)",
            self._market.value,
            self._reconnect_delay_seconds,
            attempt,
            self._max_reconnect_attempts,
        )
        return True

    def _set_state(self, state: ConnectionState, stop_event: threading.Event | None = None) -> None:
        with self._state_lock:
            if stop_event is not None and stop_event.is_set():
                return
            self._state = state
        if self._on_state_change is not None:
            self._on_state_change(self._market, state)
