"""Pytest configuration and shared fixtures."""

import pytest

from truxtrack.core.cancellation import CancelScope
from truxtrack.core.orchestrator import ClientRequestRegistry


@pytest.fixture
def scope() -> CancelScope:
    """Fresh request-level scope."""
    return CancelScope(name="test")


@pytest.fixture
def registry() -> ClientRequestRegistry:
    return ClientRequestRegistry()


@pytest.fixture
def deliveries() -> list[tuple[str, list]]:
    """Collects (tracking_number, records) pairs pushed to a sink."""
    return []


@pytest.fixture
def sink(deliveries):
    async def collect(tracking_number, records):
        deliveries.append((tracking_number, records))

    return collect
