"""
WebSocket streaming of execution updates.

Subscribers of ``/ws/executions/{execution_id}`` first receive a snapshot of
the execution record, then every ``status`` and ``step`` message the
execution recorder publishes for it.
"""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from fastapi import WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

KEEPALIVE_SECONDS = 30.0

SnapshotLoader = Callable[[str], Awaitable[Optional[Dict[str, Any]]]]


class ExecutionStreams:
    """Open WebSocket subscriptions, keyed by execution id."""

    def __init__(self):
        self.subscribers: Dict[str, Set[WebSocket]] = {}
        self._lock = asyncio.Lock()

    async def subscribe(self, websocket: WebSocket, execution_id: str):
        await websocket.accept()
        async with self._lock:
            self.subscribers.setdefault(execution_id, set()).add(websocket)
        logger.info(f"Subscribed to execution {execution_id}")

    async def unsubscribe(self, websocket: WebSocket, execution_id: str):
        async with self._lock:
            sockets = self.subscribers.get(execution_id)
            if sockets is None:
                return
            sockets.discard(websocket)
            if not sockets:
                del self.subscribers[execution_id]
        logger.info(f"Unsubscribed from execution {execution_id}")

    async def publish(self, execution_id: str, message: Dict[str, Any]) -> int:
        """
        Send a message to every subscriber of an execution.

        Subscribers whose socket fails are dropped.

        Returns:
            Number of subscribers reached
        """
        async with self._lock:
            sockets = list(self.subscribers.get(execution_id, ()))
        if not sockets:
            return 0

        text = json.dumps({"execution_id": execution_id, **message}, default=str)
        failed: List[WebSocket] = []
        for websocket in sockets:
            try:
                await websocket.send_text(text)
            except Exception as e:
                logger.warning(f"Dropping subscriber of execution {execution_id}: {e}")
                failed.append(websocket)

        for websocket in failed:
            await self.unsubscribe(websocket, execution_id)
        return len(sockets) - len(failed)


streams = ExecutionStreams()

# Set by the main app once the workflow manager exists
_snapshot_loader: Optional[SnapshotLoader] = None


def set_snapshot_loader(loader: Optional[SnapshotLoader]):
    """Set the coroutine that loads an execution record as a JSON-ready dict."""
    global _snapshot_loader
    _snapshot_loader = loader


async def _send_snapshot(websocket: WebSocket, execution_id: str):
    execution = await _snapshot_loader(execution_id) if _snapshot_loader else None
    await websocket.send_json({"type": "snapshot", "execution_id": execution_id, "execution": execution})


async def websocket_endpoint(websocket: WebSocket, execution_id: str):
    """
    Stream one execution's updates.

    Client messages:
    - ``ping``: answered with ``pong``
    - ``snapshot``: re-send the current execution record

    Server messages: ``snapshot``, ``status``, ``step`` and ``keepalive``
    (after 30s of client silence).
    """
    await streams.subscribe(websocket, execution_id)

    try:
        await _send_snapshot(websocket, execution_id)

        while True:
            try:
                data = await asyncio.wait_for(websocket.receive_text(), timeout=KEEPALIVE_SECONDS)
            except asyncio.TimeoutError:
                await websocket.send_json({"type": "keepalive"})
                continue

            if data == "ping":
                await websocket.send_text("pong")
            elif data == "snapshot":
                await _send_snapshot(websocket, execution_id)

    except WebSocketDisconnect:
        logger.info(f"Client disconnected from execution {execution_id}")
    except Exception as e:
        logger.error(f"WebSocket error on execution {execution_id}: {e}")
    finally:
        await streams.unsubscribe(websocket, execution_id)


async def send_execution_update(execution_id: str, update: Dict[str, Any]):
    """
    Publish an execution update to every subscriber.

    Used as the execution recorder's publisher.

    Args:
        execution_id: Execution ID
        update: Message with a ``type`` of ``status`` or ``step``
    """
    await streams.publish(execution_id, update)
