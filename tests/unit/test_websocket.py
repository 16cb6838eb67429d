"""
Unit tests for execution update streaming.
"""
import json

import pytest
from fastapi import FastAPI, WebSocket
from fastapi.testclient import TestClient

from workflow_engine.api.websocket import ExecutionStreams, set_snapshot_loader, websocket_endpoint


class FakeWebSocket:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.accepted = False
        self.sent = []

    async def accept(self):
        self.accepted = True

    async def send_text(self, text: str):
        if self.fail:
            raise RuntimeError("connection closed")
        self.sent.append(json.loads(text))


class TestExecutionStreams:
    """Subscription bookkeeping and fan-out."""

    @pytest.mark.asyncio
    async def test_publish_reaches_subscribers_of_execution(self):
        streams = ExecutionStreams()
        watching, other = FakeWebSocket(), FakeWebSocket()
        await streams.subscribe(watching, "ex-1")
        await streams.subscribe(other, "ex-2")

        reached = await streams.publish("ex-1", {"type": "status", "status": "succeeded"})

        assert reached == 1
        assert watching.accepted
        assert watching.sent == [{"execution_id": "ex-1", "type": "status", "status": "succeeded"}]
        assert other.sent == []

    @pytest.mark.asyncio
    async def test_failed_subscribers_are_dropped(self):
        streams = ExecutionStreams()
        broken, healthy = FakeWebSocket(fail=True), FakeWebSocket()
        await streams.subscribe(broken, "ex-1")
        await streams.subscribe(healthy, "ex-1")

        assert await streams.publish("ex-1", {"type": "step"}) == 1
        assert streams.subscribers["ex-1"] == {healthy}

    @pytest.mark.asyncio
    async def test_publish_without_subscribers(self):
        assert await ExecutionStreams().publish("ex-1", {"type": "step"}) == 0

    @pytest.mark.asyncio
    async def test_last_unsubscribe_removes_entry(self):
        streams = ExecutionStreams()
        ws = FakeWebSocket()
        await streams.subscribe(ws, "ex-1")
        await streams.unsubscribe(ws, "ex-1")
        assert "ex-1" not in streams.subscribers


class TestEndpoint:
    """The /ws/executions/{id} protocol."""

    @pytest.fixture
    def client(self):
        app = FastAPI()

        @app.websocket("/ws/executions/{execution_id}")
        async def stream(websocket: WebSocket, execution_id: str):
            await websocket_endpoint(websocket, execution_id)

        async def loader(execution_id):
            return {"id": execution_id, "status": "running"} if execution_id == "ex-1" else None

        set_snapshot_loader(loader)
        yield TestClient(app)
        set_snapshot_loader(None)

    def test_snapshot_then_ping(self, client):
        with client.websocket_connect("/ws/executions/ex-1") as websocket:
            first = websocket.receive_json()
            assert first == {"type": "snapshot", "execution_id": "ex-1", "execution": {"id": "ex-1", "status": "running"}}

            websocket.send_text("ping")
            assert websocket.receive_text() == "pong"

            websocket.send_text("snapshot")
            assert websocket.receive_json()["type"] == "snapshot"

    def test_unknown_execution_snapshot_is_null(self, client):
        with client.websocket_connect("/ws/executions/missing") as websocket:
            assert websocket.receive_json()["execution"] is None
