from __future__ import annotations

from .enums import Market


class TickerHubError(RuntimeError):
    """Base class for errors raised by the ticker hub."""


class TransportError(TickerHubError):
    """Raised when a stream connection drops, fails its handshake, or misses a heartbeat."""


class DecodeError(TickerHubError, ValueError):
    """Raised when an inbound ticker batch cannot be decoded."""


class ValidationError(TickerHubError, ValueError):
    """Raised when user supplied input is rejected before reaching the pipeline."""


class ExhaustedRetryError(TickerHubError):
    """Terminal failure of one market stream after all reconnect attempts were used."""

    def __init__(self, market: Market, attempts: int) -> None:
        super().__init__(
            f"{market.value} stream gave up after {attempts} reconnect attempts; call connect() to retry"
        )
        self.market = market
        self.attempts = attempts


class PersistenceImportError(TickerHubError, ValueError):
    """Raised when an imported favorites payload is malformed. No state is changed."""
