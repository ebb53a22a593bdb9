"""Tests for racing providers on one tracking number."""

import asyncio
import random

import pytest

from truxtrack.core.cancellation import CancelScope
from truxtrack.core.models import EMPTY, InvalidRequestError, Resolved
from truxtrack.core.orchestrator import RaceCoordinator

from tests.helpers import StubProvider, record, wait_until


class TestWinner:
    """First Found wins."""

    async def test_fast_provider_wins_and_slow_is_cancelled(self, scope):
        fast = StubProvider("fast", delay=0.01)
        slow = StubProvider("slow", delay=5.0)
        loop = asyncio.get_running_loop()

        started = loop.time()
        outcome = await RaceCoordinator([slow, fast]).race("A1", scope)

        assert isinstance(outcome, Resolved)
        assert outcome.provider == "fast"
        assert loop.time() - started < 1.0
        await wait_until(lambda: slow.cancelled == ["resolved by fast"])
        assert slow.producer_calls == 0

    async def test_list_order_does_not_decide(self, scope):
        first = StubProvider("first", delay=0.1)
        second = StubProvider("second", delay=0.01)

        outcome = await RaceCoordinator([first, second]).race("A1", scope)

        assert outcome.provider == "second"

    async def test_records_sorted_newest_first(self, scope):
        provider = StubProvider("only", records=[record(1), record(3), record(2)])

        outcome = await RaceCoordinator([provider]).race("A1", scope)

        assert [r.timestamp.day for r in outcome.records] == [3, 2, 1]

    async def test_late_found_is_discarded(self, scope):
        fast = StubProvider("fast", delay=0.01)
        stubborn = StubProvider("stubborn", delay=0.05, ignore_cancel=True)

        outcome = await RaceCoordinator([fast, stubborn]).race("A1", scope)
        await wait_until(lambda: stubborn.finished == 1)
        await asyncio.sleep(0.01)

        assert outcome.provider == "fast"
        assert stubborn.producer_calls == 0

    @pytest.mark.parametrize("trial", range(20))
    async def test_exactly_one_producer_runs(self, scope, trial):
        rng = random.Random(trial)
        providers = [
            StubProvider(f"p{i}", delay=rng.choice([0.0, 0.001, 0.005]), ignore_cancel=rng.random() < 0.5)
            for i in range(3)
        ]

        outcome = await RaceCoordinator(providers).race("A1", scope)
        await wait_until(lambda: all(p.finished == 1 for p in providers))
        await asyncio.sleep(0.01)

        assert isinstance(outcome, Resolved)
        assert sum(p.producer_calls for p in providers) == 1


class TestEmpty:
    """Races that produce nothing."""

    async def test_all_no_match(self, scope):
        providers = [StubProvider("a", found=False), StubProvider("b", found=False, delay=0.01)]

        outcome = await RaceCoordinator(providers).race("A1", scope)

        assert outcome is EMPTY

    async def test_provider_exception_counts_as_no_match(self, scope):
        broken = StubProvider("broken", error=RuntimeError("portal down"))
        working = StubProvider("working", delay=0.02)

        outcome = await RaceCoordinator([broken, working]).race("A1", scope)

        assert outcome.provider == "working"

    async def test_failing_producer_gives_empty_without_fallback(self, scope):
        winner = StubProvider("winner", producer_error=RuntimeError("grid vanished"))
        runner_up = StubProvider("runner_up", delay=0.05, ignore_cancel=True)

        outcome = await RaceCoordinator([winner, runner_up]).race("A1", scope)
        await wait_until(lambda: runner_up.finished == 1)
        await asyncio.sleep(0.01)

        assert outcome is EMPTY
        assert winner.producer_calls == 1
        assert runner_up.producer_calls == 0

    async def test_found_with_no_rows_is_empty(self, scope):
        provider = StubProvider("blank", records=[])

        assert await RaceCoordinator([provider]).race("A1", scope) is EMPTY

    async def test_no_providers(self, scope):
        assert await RaceCoordinator([]).race("A1", scope) is EMPTY

    async def test_blank_tracking_number_rejected(self, scope):
        with pytest.raises(InvalidRequestError):
            await RaceCoordinator([StubProvider("a")]).race("  ", scope)


class TestCancellation:
    """Request-level cancellation reaches every provider."""

    async def test_parent_cancel_abandons_race(self, scope):
        providers = [StubProvider("a", delay=5.0), StubProvider("b", delay=5.0)]
        loop = asyncio.get_running_loop()
        loop.call_later(0.05, scope.cancel, "client disconnected")

        started = loop.time()
        outcome = await RaceCoordinator(providers).race("A1", scope)

        assert outcome is EMPTY
        assert loop.time() - started < 1.0
        await wait_until(lambda: all(p.cancelled == ["client disconnected"] for p in providers))

    async def test_already_cancelled_parent_launches_nothing(self):
        parent = CancelScope()
        parent.cancel("shutting down")
        provider = StubProvider("a")

        outcome = await RaceCoordinator([provider]).race("A1", parent)

        assert outcome is EMPTY
        assert provider.lookups == []
