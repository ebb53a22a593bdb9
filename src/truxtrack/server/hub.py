"""
WebSocket push channel for tracking updates.

Protocol:
  Client sends: {"type": "track", "clientName": "...", "trackingNumbers": ["..."]}
  Server sends:
    - {"type": "ack", "clientName": "...", "trackingNumbers": [...]}
    - {"type": "update", "trackingNumber": "...", "history": [...]}   once per number
    - {"type": "complete", "clientName": "...", "summary": {...}}
    - {"type": "error", "message": "..."}

A new "track" message from the same client name supersedes the previous
one. Closing the socket cancels everything the connection started.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Sequence

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from truxtrack.core.cancellation import CancelScope
from truxtrack.core.models import InvalidRequestError, StatusRecord, TrackingRequest
from truxtrack.core.orchestrator import BatchOrchestrator, ClientRequestRegistry
from truxtrack.core.providers import Provider

logger = logging.getLogger(__name__)


class OrderTrackerHub:
    """Connects WebSocket clients to the batch orchestrator."""

    def __init__(self, providers: Sequence[Provider], registry: ClientRequestRegistry) -> None:
        self.orchestrator = BatchOrchestrator(providers)
        self.registry = registry

    async def serve(self, websocket: WebSocket) -> None:
        """Handle one connection until the client disconnects."""
        await websocket.accept()

        connection = CancelScope(name="connection")
        send_lock = asyncio.Lock()
        jobs: set[asyncio.Task[None]] = set()

        async def send(payload: dict[str, Any]) -> None:
            async with send_lock:
                await websocket.send_json(payload)

        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(message.get("code", 1000))

                try:
                    request = self._parse(message.get("text"))
                except (ValueError, InvalidRequestError) as e:
                    logger.warning(f"Rejected tracking message: {e}")
                    await send({"type": "error", "message": str(e)})
                    continue

                scope = self.registry.register(request.client_id, parent=connection)
                await send({
                    "type": "ack",
                    "clientName": request.client_id,
                    "trackingNumbers": list(request.tracking_numbers),
                })

                job = asyncio.create_task(self._track(request, scope, send))
                jobs.add(job)
                job.add_done_callback(jobs.discard)

        except WebSocketDisconnect:
            logger.info("Client disconnected")
        finally:
            connection.cancel("client disconnected")
            if jobs:
                await asyncio.gather(*jobs, return_exceptions=True)

    def _parse(self, raw: str | None) -> TrackingRequest:
        if raw is None:
            raise ValueError("Binary frames are not supported")

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValueError("Invalid JSON received") from e

        if not isinstance(data, dict) or data.get("type", "track") != "track":
            raise ValueError("Unsupported message")

        numbers = data.get("trackingNumbers")
        if not isinstance(numbers, list):
            raise ValueError("trackingNumbers must be a list")

        return TrackingRequest.create(data.get("clientName"), [str(n) for n in numbers])

    async def _track(self, request: TrackingRequest, scope: CancelScope, send: Any) -> None:
        async def push(tracking_number: str, records: list[StatusRecord]) -> None:
            await send({
                "type": "update",
                "trackingNumber": tracking_number,
                "history": [record.to_dict() for record in records],
            })

        try:
            summary = await self.orchestrator.run(
                request.client_id,
                request.tracking_numbers,
                push,
                scope,
            )
            if not scope.cancelled:
                await send({
                    "type": "complete",
                    "clientName": request.client_id,
                    "summary": summary.to_dict(),
                })
        except (WebSocketDisconnect, RuntimeError) as e:
            # Socket closed underneath us
            logger.debug(f"Could not push completion for {request.client_id}: {e}")
        finally:
            self.registry.release(request.client_id, scope)


def create_router(hub: OrderTrackerHub) -> APIRouter:
    router = APIRouter()

    @router.websocket("/ordertracker")
    async def order_tracker(websocket: WebSocket) -> None:
        await hub.serve(websocket)

    return router
