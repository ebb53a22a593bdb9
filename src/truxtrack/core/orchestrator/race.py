"""
Race coordinator.

Runs every provider concurrently for one tracking number. The first provider
to report Found wins: its siblings are cancelled at once and only the
winner's deferred producer is invoked.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Sequence

from truxtrack.core.cancellation import CancelScope, ScopeCancelled
from truxtrack.core.logging import ContextualLogger, get_contextual_logger
from truxtrack.core.models import (
    EMPTY,
    Found,
    InvalidRequestError,
    RaceOutcome,
    Resolved,
    ResultProducer,
    sort_records,
)
from truxtrack.core.providers.base import Provider


@dataclass
class _Entrant:
    """One provider's place in a race."""

    provider: Provider
    scope: CancelScope
    log: ContextualLogger


@dataclass
class _Winner:
    entrant: _Entrant
    producer: ResultProducer


class RaceCoordinator:
    """Resolves one tracking number by racing all providers.

    Guarantees:
    - Exactly one RaceOutcome per ``race()`` call
    - The first Found wins, regardless of provider list order
    - Losers are cancelled as soon as the winner is declared
    - The winner's producer is invoked at most once; a failing producer
      yields EMPTY without falling back to another provider
    - Provider exceptions are contained and count as NoMatch
    """

    def __init__(self, providers: Sequence[Provider]) -> None:
        """Initialize the coordinator.

        Args:
            providers: Providers to race, in launch order
        """
        self.providers = list(providers)
        # Loser tasks keep running until they observe cancellation
        self._background: set[asyncio.Task[None]] = set()

    async def race(
        self,
        tracking_number: str,
        parent: CancelScope,
        log: ContextualLogger | None = None,
    ) -> RaceOutcome:
        """Race all providers for ``tracking_number``.

        Args:
            tracking_number: Tracking number to resolve
            parent: Request-level scope; cancelling it abandons the race
            log: Logger carrying client context

        Returns:
            Resolved with records newest first, or EMPTY
        """
        if not tracking_number or not tracking_number.strip():
            raise InvalidRequestError("Tracking number cannot be empty.")

        log = (log or get_contextual_logger("race")).with_context(tracking_number=tracking_number)
        race_scope = parent.child(name=f"race:{tracking_number}")

        try:
            winner = await self._run_race(tracking_number, race_scope, log)
            if winner is None:
                return EMPTY
            return await self._produce(winner, log)
        except asyncio.CancelledError:
            race_scope.cancel("race abandoned")
            raise
        finally:
            race_scope.detach()

    async def _run_race(
        self,
        tracking_number: str,
        race_scope: CancelScope,
        log: ContextualLogger,
    ) -> _Winner | None:
        if race_scope.cancelled:
            log.info("Request cancelled before race started")
            return None

        if not self.providers:
            log.warning("No providers configured")
            return None

        loop = asyncio.get_running_loop()
        winner: asyncio.Future[_Winner] = loop.create_future()

        entrants = [
            _Entrant(
                provider=provider,
                scope=race_scope.child(name=f"{provider.name}:{tracking_number}"),
                log=log.with_context(provider=provider.name),
            )
            for provider in self.providers
        ]

        pending: set[asyncio.Future] = set()
        for entrant in entrants:
            entrant.log.info("Starting scrapper...")
            task = asyncio.create_task(
                self._attempt(tracking_number, entrant, entrants, winner),
                name=f"lookup:{entrant.provider.name}:{tracking_number}",
            )
            self._background.add(task)
            task.add_done_callback(self._background.discard)
            pending.add(task)

        cancelled = asyncio.ensure_future(race_scope.wait())
        try:
            while pending and not winner.done() and not race_scope.cancelled:
                _, still_running = await asyncio.wait(
                    pending | {winner, cancelled},
                    return_when=asyncio.FIRST_COMPLETED,
                )
                pending = still_running - {winner, cancelled}
        finally:
            cancelled.cancel()

        if winner.done():
            return winner.result()

        if race_scope.cancelled:
            log.info(f"Race cancelled: {race_scope.reason}")
        else:
            log.warning("No provider found a status history")
            winner.cancel()
        return None

    async def _attempt(
        self,
        tracking_number: str,
        entrant: _Entrant,
        entrants: list[_Entrant],
        winner: asyncio.Future[_Winner],
    ) -> None:
        """Run one provider lookup and claim the win on the first Found."""
        log = entrant.log
        try:
            outcome = await entrant.provider.lookup(tracking_number, entrant.scope, log)
        except ScopeCancelled as e:
            log.info(f"Lookup cancelled: {e.reason or 'cancelled'}")
            return
        except Exception as e:
            log.exception(f"ScraperError: {e!r}")
            return

        if not isinstance(outcome, Found):
            log.info("No match")
            return

        if winner.done() or entrant.scope.cancelled:
            # Producer is never invoked; the scope cancel releases the session
            log.info("Found, but the race is already over; discarding")
            entrant.scope.cancel("race already resolved")
            return

        winner.set_result(_Winner(entrant=entrant, producer=outcome.producer))
        log.info("Won the race")

        for other in entrants:
            if other is not entrant:
                other.scope.cancel(f"resolved by {entrant.provider.name}")

    async def _produce(self, winner: _Winner, log: ContextualLogger) -> RaceOutcome:
        entrant = winner.entrant
        try:
            records = await entrant.scope.run(winner.producer())
        except ScopeCancelled as e:
            log.info(f"Extraction cancelled: {e.reason or 'cancelled'}")
            return EMPTY
        except Exception as e:
            log.error(f"Extraction failed for {entrant.provider.name}: {e!r}")
            return EMPTY

        if not records:
            return EMPTY

        return Resolved(records=tuple(sort_records(records)), provider=entrant.provider.name)
