"""Tests for the WebSocket hub lifecycle."""

import asyncio
import json

from truxtrack.core.orchestrator import ClientRequestRegistry
from truxtrack.server.hub import OrderTrackerHub

from tests.helpers import StubProvider, wait_until


class FakeWebSocket:
    """Queue-backed stand-in for a FastAPI WebSocket."""

    def __init__(self) -> None:
        self.inbox: asyncio.Queue[dict] = asyncio.Queue()
        self.sent: list[dict] = []
        self.accepted = False

    async def accept(self) -> None:
        self.accepted = True

    async def receive(self) -> dict:
        return await self.inbox.get()

    async def send_json(self, payload: dict) -> None:
        self.sent.append(payload)

    def push(self, payload: dict) -> None:
        self.inbox.put_nowait({"type": "websocket.receive", "text": json.dumps(payload)})

    def push_bytes(self, data: bytes) -> None:
        self.inbox.put_nowait({"type": "websocket.receive", "bytes": data})

    def disconnect(self) -> None:
        self.inbox.put_nowait({"type": "websocket.disconnect", "code": 1000})


async def test_disconnect_cancels_outstanding_work():
    provider = StubProvider("stub", delay=5.0)
    registry = ClientRequestRegistry()
    hub = OrderTrackerHub([provider], registry)
    ws = FakeWebSocket()

    serving = asyncio.create_task(hub.serve(ws))
    ws.push({"type": "track", "clientName": "acme", "trackingNumbers": ["A1"]})
    await wait_until(lambda: provider.lookups == ["A1"])

    ws.disconnect()
    await asyncio.wait_for(serving, timeout=1.0)

    assert ws.accepted
    assert [message["type"] for message in ws.sent] == ["ack"]
    assert "acme" not in registry
    await wait_until(lambda: provider.cancelled == ["client disconnected"])


async def test_completed_request_is_released():
    provider = StubProvider("stub", delay=0.01)
    registry = ClientRequestRegistry()
    hub = OrderTrackerHub([provider], registry)
    ws = FakeWebSocket()

    serving = asyncio.create_task(hub.serve(ws))
    ws.push({"clientName": "acme", "trackingNumbers": ["A1", "A1"]})
    await wait_until(lambda: "acme" not in registry and any(m["type"] == "complete" for m in ws.sent))

    assert "acme" not in registry
    assert [m["type"] for m in ws.sent] == ["ack", "update", "complete"]

    ws.disconnect()
    await asyncio.wait_for(serving, timeout=1.0)


async def test_unsupported_message_type():
    hub = OrderTrackerHub([StubProvider("stub")], ClientRequestRegistry())
    ws = FakeWebSocket()

    serving = asyncio.create_task(hub.serve(ws))
    ws.push({"type": "subscribe", "clientName": "acme"})
    ws.push({"clientName": "acme", "trackingNumbers": "A1"})
    ws.disconnect()
    await asyncio.wait_for(serving, timeout=1.0)

    assert ws.sent == [
        {"type": "error", "message": "Unsupported message"},
        {"type": "error", "message": "trackingNumbers must be a list"},
    ]


async def test_binary_frame_is_rejected_without_dropping_work():
    provider = StubProvider("stub", delay=0.05)
    registry = ClientRequestRegistry()
    hub = OrderTrackerHub([provider], registry)
    ws = FakeWebSocket()

    serving = asyncio.create_task(hub.serve(ws))
    ws.push({"clientName": "acme", "trackingNumbers": ["A1"]})
    ws.push_bytes(b"\x00\x01")
    await wait_until(lambda: any(m["type"] == "complete" for m in ws.sent))

    assert [m["type"] for m in ws.sent] == ["ack", "error", "update", "complete"]
    assert ws.sent[1]["message"] == "Binary frames are not supported"
    assert provider.cancelled == []

    ws.disconnect()
    await asyncio.wait_for(serving, timeout=1.0)
