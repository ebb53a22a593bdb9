"""
Tracking data model.

Value types shared by providers, the race coordinator and the delivery layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Iterable, Protocol, Union


# =============================================================================
# Errors
# =============================================================================


class TruxTrackError(Exception):
    """Base exception for TruxTrack errors."""
    pass


class InvalidRequestError(TruxTrackError):
    """Tracking request rejected before any work was started."""
    pass


# =============================================================================
# Status Records
# =============================================================================


@dataclass(frozen=True)
class StatusRecord:
    """A single status event in a shipment's history."""

    timestamp: datetime
    status: str
    is_completed: bool = False
    location: str = ""
    company: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON shape pushed to clients."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "status": self.status,
            "isCompleted": self.is_completed,
            "location": self.location,
            "company": self.company,
        }


def sort_records(records: Iterable[StatusRecord]) -> list[StatusRecord]:
    """Return records newest first. Records with equal timestamps keep their order."""
    return sorted(records, key=lambda record: record.timestamp, reverse=True)


# =============================================================================
# Requests
# =============================================================================


@dataclass(frozen=True)
class TrackingRequest:
    """One client's request to track a set of tracking numbers."""

    client_id: str
    tracking_numbers: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def create(cls, client_id: str | None, tracking_numbers: Iterable[str] | None) -> "TrackingRequest":
        """Validate and normalize an inbound request.

        Blank tracking numbers are dropped and duplicates collapsed,
        keeping first-seen order.

        Raises:
            InvalidRequestError: If the client is blank or no numbers remain
        """
        client = (client_id or "").strip()
        if not client:
            raise InvalidRequestError("Client name cannot be null or empty.")

        numbers: dict[str, None] = {}
        for number in tracking_numbers or ():
            cleaned = str(number).strip()
            if cleaned:
                numbers.setdefault(cleaned, None)

        if not numbers:
            raise InvalidRequestError(f"No tracking numbers supplied for client {client}.")

        return cls(client_id=client, tracking_numbers=tuple(numbers))


# =============================================================================
# Outcomes
# =============================================================================


ResultProducer = Callable[[], Awaitable[list[StatusRecord]]]


class NoMatch:
    """Provider found nothing for the tracking number."""

    _instance: "NoMatch | None" = None

    def __new__(cls) -> "NoMatch":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NO_MATCH"


@dataclass(frozen=True)
class Found:
    """Provider detected a status history; ``producer`` extracts it on demand."""

    producer: ResultProducer


ProviderOutcome = Union[NoMatch, Found]

NO_MATCH = NoMatch()


@dataclass(frozen=True)
class Resolved:
    """A race produced a non-empty status history."""

    records: tuple[StatusRecord, ...]
    provider: str | None = None


class Empty:
    """A race produced nothing usable."""

    _instance: "Empty | None" = None

    def __new__(cls) -> "Empty":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @property
    def records(self) -> tuple[StatusRecord, ...]:
        return ()

    def __repr__(self) -> str:
        return "EMPTY"


RaceOutcome = Union[Resolved, Empty]

EMPTY = Empty()


# =============================================================================
# Delivery
# =============================================================================


class DeliverySink(Protocol):
    """Caller-supplied notifier, awaited once per tracking number."""

    async def __call__(self, tracking_number: str, records: list[StatusRecord]) -> None:
        ...
