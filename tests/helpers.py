"""Test doubles for providers and sessions."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Callable

from truxtrack.core.cancellation import CancelScope, ScopeCancelled
from truxtrack.core.logging import ContextualLogger
from truxtrack.core.models import NO_MATCH, Found, ProviderOutcome, StatusRecord
from truxtrack.core.providers.base import Provider
from truxtrack.core.session import RemoteSession


def record(day: int, status: str = "In transit", hour: int = 12) -> StatusRecord:
    return StatusRecord(timestamp=datetime(2025, 3, day, hour, 0), status=status)


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Poll ``predicate`` until it holds or ``timeout`` elapses."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


class StubProvider(Provider):
    """Scripted provider.

    ``delay`` may be a float or a per-tracking-number mapping. Unless
    ``ignore_cancel`` is set the delay is awaited under the attempt scope,
    so a cancelled attempt stops immediately.
    """

    def __init__(
        self,
        name: str,
        *,
        delay: float | dict[str, float] = 0.0,
        records: list[StatusRecord] | None = None,
        found: bool = True,
        error: Exception | None = None,
        producer_error: Exception | None = None,
        ignore_cancel: bool = False,
    ) -> None:
        self._name = name
        self.delay = delay
        self.records = records if records is not None else [record(1, f"seen by {name}")]
        self.found = found
        self.error = error
        self.producer_error = producer_error
        self.ignore_cancel = ignore_cancel

        self.lookups: list[str] = []
        self.cancelled: list[str | None] = []
        self.producer_calls = 0
        self.finished = 0

    @property
    def name(self) -> str:
        return self._name

    def _delay_for(self, tracking_number: str) -> float:
        if isinstance(self.delay, dict):
            return self.delay.get(tracking_number, 0.0)
        return self.delay

    async def lookup(
        self,
        tracking_number: str,
        scope: CancelScope,
        log: ContextualLogger | None = None,
    ) -> ProviderOutcome:
        self.lookups.append(tracking_number)
        try:
            delay = self._delay_for(tracking_number)
            if self.ignore_cancel:
                await asyncio.sleep(delay)
            else:
                await scope.run(asyncio.sleep(delay))
        except ScopeCancelled as e:
            self.cancelled.append(e.reason)
            raise
        finally:
            self.finished += 1

        if self.error is not None:
            raise self.error
        if not self.found:
            return NO_MATCH

        async def produce() -> list[StatusRecord]:
            self.producer_calls += 1
            if self.producer_error is not None:
                raise self.producer_error
            return list(self.records)

        return Found(produce)


class FakeSession(RemoteSession):
    """Session that records lifecycle calls instead of launching a browser."""

    def __init__(self, open_delay: float = 0.0, open_error: Exception | None = None) -> None:
        super().__init__()
        self.open_delay = open_delay
        self.open_error = open_error
        self.open_calls = 0
        self.close_calls = 0
        self.events: list[str] = []

    async def _open(self) -> None:
        self.open_calls += 1
        self.events.append("open:start")
        if self.open_delay:
            await asyncio.sleep(self.open_delay)
        if self.open_error is not None:
            raise self.open_error
        self.events.append("open:done")

    async def _close(self) -> None:
        self.close_calls += 1
        self.events.append("close")


class SessionPool:
    """Session factory that remembers every session it created."""

    def __init__(self, **kwargs) -> None:
        self.kwargs = kwargs
        self.sessions: list[FakeSession] = []

    def __call__(self) -> FakeSession:
        session = FakeSession(**self.kwargs)
        self.sessions.append(session)
        return session

    @property
    def last(self) -> FakeSession:
        return self.sessions[-1]
