from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any


class FakeSocket:
    """Yields scripted messages, then either raises ``error`` or blocks like an idle stream."""

    def __init__(self, messages: list[str], *, error: BaseException | None = None) -> None:
        self._messages = list(messages)
        self._error = error

    async def recv(self) -> str:
        if self._messages:
            return self._messages.pop(0)
        if self._error is not None:
            raise self._error
        await asyncio.sleep(3600)
        raise AssertionError("unreachable")


class ScriptedConnector:
    """Stand-in for ``websockets.connect``: each call consumes one scripted outcome.

    An outcome is an exception (the handshake fails) or a ``FakeSocket``.
    Calls past the end of the script fail with ``ConnectionRefusedError``.
    """

    def __init__(self, outcomes: list[BaseException | FakeSocket] | None = None) -> None:
        self._outcomes = list(outcomes or [])
        self.calls = 0
        self.urls: list[str] = []
        self.kwargs: list[dict[str, Any]] = []

    def __call__(self, url: str, **kwargs: Any) -> Any:
        self.calls += 1
        self.urls.append(url)
        self.kwargs.append(kwargs)
        outcome = self._outcomes.pop(0) if self._outcomes else ConnectionRefusedError("refused")
        return self._open(outcome)

    @asynccontextmanager
    async def _open(self, outcome: BaseException | FakeSocket) -> AsyncIterator[FakeSocket]:
        if isinstance(outcome, BaseException):
            raise outcome
        yield outcome


def wait_for(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()

