"""
TruxTrack push server - FastAPI application.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Sequence

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, Field

from truxtrack import __version__
from truxtrack.core.cancellation import CancelScope
from truxtrack.core.config.models import AppConfig
from truxtrack.core.models import StatusRecord
from truxtrack.core.orchestrator import ClientRequestRegistry
from truxtrack.core.providers import Provider, build_providers

from .hub import OrderTrackerHub, create_router

logger = logging.getLogger(__name__)

status_router = APIRouter(prefix="/api/scrapper")

# Placeholder sent by generated API clients when the field is left untouched
PLACEHOLDER_ORDER_ID = "string"


class TrackOrderRequest(BaseModel):
    """Body of a one-shot tracking request."""

    order_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("OrderId", "orderId", "order_id"),
    )


@status_router.get("/status")
async def get_status() -> dict[str, str]:
    return {
        "status": "TruxTrack is up and running.",
        "time": datetime.now(timezone.utc).isoformat(),
    }


@status_router.post("/track-order")
async def track_order(body: TrackOrderRequest, request: Request) -> Any:
    """Track a single order and return its history once every provider has answered."""
    order_id = (body.order_id or "").strip()
    if not order_id or order_id.lower() == PLACEHOLDER_ORDER_ID:
        return JSONResponse(status_code=400, content={"error": "A valid OrderId is required."})

    hub: OrderTrackerHub = request.app.state.hub
    history: list[StatusRecord] = []

    async def collect(tracking_number: str, records: list[StatusRecord]) -> None:
        history.extend(records)

    try:
        await hub.orchestrator.run(
            "http",
            [order_id],
            collect,
            CancelScope(name=f"track-order:{order_id}"),
        )
    except Exception as e:
        logger.exception(f"Tracking failed for order {order_id}")
        return JSONResponse(
            status_code=500,
            content={"error": "Scraping failed.", "details": str(e)},
        )

    return {
        "orderId": order_id,
        "statusHistory": [
            {"date": record.timestamp.isoformat(), "status": record.status}
            for record in history
        ],
    }


def create_app(
    config: AppConfig | None = None,
    providers: Sequence[Provider] | None = None,
) -> FastAPI:
    """Build the FastAPI app.

    Args:
        config: Application configuration (defaults if omitted)
        providers: Provider override; built from config when omitted

    Returns:
        Configured FastAPI application
    """
    config = config or AppConfig()
    if providers is None:
        providers = build_providers(config)

    registry = ClientRequestRegistry()
    hub = OrderTrackerHub(providers, registry)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("=== TruxTrack server starting ===")
        logger.info(f"  providers : {', '.join(p.name for p in providers) or '(none)'}")
        if not providers:
            logger.warning("No providers enabled -- every tracking number will come back empty!")
        yield
        registry.unregister_all()
        logger.info("=== TruxTrack server stopped ===")

    app = FastAPI(
        title="TruxTrack",
        description="Multi-provider shipment status tracker",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.registry = registry
    app.state.hub = hub

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(status_router, tags=["status"])
    app.include_router(create_router(hub), tags=["websocket"])

    return app
