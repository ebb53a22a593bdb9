"""
Batch orchestrator.

Coordinates one client request: one race per tracking number, each result
streamed to the delivery sink as soon as it resolves.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Sequence

from truxtrack.core.cancellation import CancelScope
from truxtrack.core.logging import ContextualLogger, get_contextual_logger
from truxtrack.core.models import (
    EMPTY,
    DeliverySink,
    InvalidRequestError,
    RaceOutcome,
    Resolved,
    TrackingRequest,
)
from truxtrack.core.providers.base import Provider

from .race import RaceCoordinator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class BatchSummary:
    """Statistics for one tracking request."""

    client_id: str
    requested: int = 0
    delivered: int = 0
    resolved: int = 0
    empty: int = 0
    sink_errors: int = 0
    rejected: bool = False
    cancelled: bool = False
    cancel_reason: str | None = None

    started_at: datetime = field(default_factory=_utcnow)
    finished_at: datetime | None = None

    delivered_numbers: list[str] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float | None:
        """Get batch duration in seconds."""
        if self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None

    @property
    def pending(self) -> int:
        return self.requested - self.delivered

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "client_id": self.client_id,
            "requested": self.requested,
            "delivered": self.delivered,
            "resolved": self.resolved,
            "empty": self.empty,
            "sink_errors": self.sink_errors,
            "rejected": self.rejected,
            "cancelled": self.cancelled,
            "duration_seconds": self.duration_seconds,
        }


class BatchOrchestrator:
    """Runs a race per tracking number and streams each result to a sink.

    Coordinates:
    - Request validation (blank client / no numbers is a logged no-op)
    - One independent race per tracking number under the request scope
    - Exactly-once delivery per tracking number
    - Abandoning outstanding races when the request scope is cancelled
    """

    def __init__(self, providers: Sequence[Provider]) -> None:
        """Initialize the orchestrator.

        Args:
            providers: Providers raced for every tracking number, in launch order
        """
        self.coordinator = RaceCoordinator(providers)

    @property
    def providers(self) -> list[Provider]:
        return self.coordinator.providers

    async def run(
        self,
        client_id: str,
        tracking_numbers: Iterable[str],
        sink: DeliverySink,
        parent: CancelScope | None = None,
    ) -> BatchSummary:
        """Track every number in the request.

        Returns once every tracking number has been delivered, or as soon as
        ``parent`` is cancelled (no further deliveries happen after that).

        Args:
            client_id: Requesting client
            tracking_numbers: Numbers to track
            sink: Awaited once per tracking number with its records
            parent: Request scope (client disconnect, supersession, shutdown)

        Returns:
            BatchSummary with delivery statistics
        """
        log = get_contextual_logger("batch", client=(client_id or "").strip() or None)

        try:
            request = TrackingRequest.create(client_id, tracking_numbers)
        except InvalidRequestError as e:
            log.warning(str(e))
            summary = BatchSummary(client_id=(client_id or "").strip(), rejected=True)
            summary.finished_at = _utcnow()
            return summary

        summary = BatchSummary(client_id=request.client_id, requested=len(request.tracking_numbers))
        scope = (parent or CancelScope(name=f"request:{request.client_id}")).child(
            name=f"batch:{request.client_id}"
        )
        delivered: set[str] = set()

        log.info(
            f"Tracking {len(request.tracking_numbers)} number(s) across "
            f"{len(self.providers)} provider(s)..."
        )

        tasks = [
            asyncio.create_task(
                self._track(number, scope, sink, delivered, summary, log),
                name=f"track:{request.client_id}:{number}",
            )
            for number in request.tracking_numbers
        ]

        cancelled = asyncio.ensure_future(scope.wait())
        pending: set[asyncio.Future] = set(tasks)
        try:
            while pending and not scope.cancelled:
                _, still_running = await asyncio.wait(
                    pending | {cancelled},
                    return_when=asyncio.FIRST_COMPLETED,
                )
                pending = still_running - {cancelled}
        except asyncio.CancelledError:
            scope.cancel("request task cancelled")
            raise
        finally:
            cancelled.cancel()
            for task in pending:
                task.cancel()
            scope.detach()
            summary.finished_at = _utcnow()

        if scope.cancelled and summary.pending:
            summary.cancelled = True
            summary.cancel_reason = scope.reason
            log.info(
                f"Request cancelled ({scope.reason}); "
                f"{summary.delivered}/{summary.requested} delivered"
            )
        else:
            log.info(
                f"Request complete: {summary.resolved} resolved, {summary.empty} empty "
                f"in {summary.duration_seconds:.1f}s"
            )

        return summary

    async def _track(
        self,
        tracking_number: str,
        scope: CancelScope,
        sink: DeliverySink,
        delivered: set[str],
        summary: BatchSummary,
        log: ContextualLogger,
    ) -> None:
        log = log.with_context(tracking_number=tracking_number)
        try:
            outcome = await self.coordinator.race(tracking_number, scope, log)
        except Exception as e:
            log.exception(f"Race failed: {e!r}")
            outcome = EMPTY

        if scope.cancelled:
            return

        await self._deliver(tracking_number, outcome, sink, delivered, summary, log)

    async def _deliver(
        self,
        tracking_number: str,
        outcome: RaceOutcome,
        sink: DeliverySink,
        delivered: set[str],
        summary: BatchSummary,
        log: ContextualLogger,
    ) -> None:
        if tracking_number in delivered:
            log.error("Duplicate delivery suppressed")
            return
        delivered.add(tracking_number)

        records = list(outcome.records)
        summary.delivered += 1
        summary.delivered_numbers.append(tracking_number)
        if isinstance(outcome, Resolved):
            summary.resolved += 1
        else:
            summary.empty += 1

        try:
            await sink(tracking_number, records)
        except Exception as e:
            summary.sink_errors += 1
            log.error(f"Delivery failed: {e!r}")


async def run_tracking_batch(
    client_id: str,
    tracking_numbers: Iterable[str],
    sink: DeliverySink,
    parent: CancelScope | None = None,
    *,
    providers: Sequence[Provider],
) -> BatchSummary:
    """Convenience function to track one request.

    Args:
        client_id: Requesting client
        tracking_numbers: Numbers to track
        sink: Delivery sink
        parent: Request scope
        providers: Providers to race

    Returns:
        BatchSummary with delivery statistics
    """
    orchestrator = BatchOrchestrator(providers)
    return await orchestrator.run(client_id, tracking_numbers, sink, parent)
