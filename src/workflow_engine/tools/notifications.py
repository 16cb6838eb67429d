"""
Notification channels for send_notification nodes.
"""

import logging
import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional

import httpx

from ..errors import NotificationError

logger = logging.getLogger(__name__)


class NotificationChannel:
    """A delivery target. ``send`` returns an acknowledgment or raises."""

    name: str = "channel"

    async def send(self, message: str, recipient: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        raise NotImplementedError

    async def close(self):
        pass


class InternalFeedChannel(NotificationChannel):
    """In-app activity feed kept in memory (newest last)."""

    name = "internal"

    def __init__(self, max_items: int = 500):
        self.feed: Deque[Dict[str, Any]] = deque(maxlen=max_items)

    async def send(self, message: str, recipient: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        item = {
            "id": str(uuid.uuid4()),
            "message": message,
            "recipient": recipient,
            "metadata": metadata or {},
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        self.feed.append(item)
        logger.info(f"[Notification] internal: {message}")
        return {"delivery_id": item["id"]}


class _HttpChannel(NotificationChannel):
    """Posts notifications as JSON to a fixed URL."""

    def __init__(self, url: str, timeout: float = 15.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _body(self, message: str, recipient: Optional[str], metadata: Dict[str, Any]) -> Dict[str, Any]:
        return {"message": message, "recipient": recipient, "metadata": metadata}

    async def send(self, message: str, recipient: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not self.url:
            raise NotificationError(f"No URL configured for {self.name} notifications")

        client = await self._get_client()
        try:
            response = await client.post(self.url, json=self._body(message, recipient, metadata or {}))
        except httpx.HTTPError as e:
            raise NotificationError(f"{self.name} delivery failed: {e}")

        if response.status_code >= 300:
            raise NotificationError(f"{self.name} delivery failed: {response.status_code} - {response.text}")

        return {"status_code": response.status_code}


class WebhookChannel(_HttpChannel):
    name = "webhook"


class EmailChannel(_HttpChannel):
    """Hands the message to an email relay endpoint."""

    name = "email"

    def _body(self, message: str, recipient: Optional[str], metadata: Dict[str, Any]) -> Dict[str, Any]:
        if not recipient:
            raise NotificationError("Email notifications need a recipient")
        return {
            "to": recipient,
            "subject": metadata.get("subject") or "Workflow notification",
            "text": message,
        }


class NotificationDispatcher:
    """Routes notifications to a named channel."""

    def __init__(self, channels: Optional[List[NotificationChannel]] = None):
        self.channels: Dict[str, NotificationChannel] = {}
        for channel in channels or [InternalFeedChannel()]:
            self.register(channel)

    def register(self, channel: NotificationChannel):
        self.channels[channel.name] = channel

    async def send(
        self,
        channel: str,
        message: str,
        recipient: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Deliver a message.

        Returns:
            Acknowledgment with ``sent``, ``channel``, ``message`` and
            channel-specific delivery details

        Raises:
            NotificationError: Unknown channel or delivery failure
        """
        target = self.channels.get(channel)
        if target is None:
            raise NotificationError(f"Unknown notification channel: {channel}")

        ack = await target.send(message, recipient=recipient, metadata=metadata)
        return {"sent": True, "channel": channel, "message": message, **ack}

    async def close(self):
        for channel in self.channels.values():
            await channel.close()
