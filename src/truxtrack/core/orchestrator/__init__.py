"""Orchestrator - provider races, request batches, client supersession."""

from .batch import BatchOrchestrator, BatchSummary, run_tracking_batch
from .race import RaceCoordinator
from .registry import ClientRequestRegistry

__all__ = [
    "BatchOrchestrator",
    "BatchSummary",
    "ClientRequestRegistry",
    "RaceCoordinator",
    "run_tracking_batch",
]
