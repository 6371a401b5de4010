from __future__ import annotations

from enum import StrEnum


class Market(StrEnum):
    SPOT = "spot"
    DERIVATIVE = "derivative"


class ConnectionState(StrEnum):
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"
    ERRORED = "errored"
    RECONNECTING = "reconnecting"
    FAILED = "failed"
