"""
CRM record store collaborators used by create_lead and create_activity nodes.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from ..errors import CrmStoreError

logger = logging.getLogger(__name__)


class CrmStore:
    """Tenant-scoped record creation."""

    async def create_lead(self, tenant_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    async def create_activity(self, tenant_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    async def close(self):
        pass


class InMemoryCrmStore(CrmStore):
    """Keeps created records in process; used in development and tests."""

    def __init__(self):
        self.leads: List[Dict[str, Any]] = []
        self.activities: List[Dict[str, Any]] = []

    def _stamp(self, tenant_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        return {
            **fields,
            "id": str(uuid.uuid4()),
            "tenant_id": tenant_id,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }

    async def create_lead(self, tenant_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        record = self._stamp(tenant_id, fields)
        self.leads.append(record)
        return record

    async def create_activity(self, tenant_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        record = self._stamp(tenant_id, fields)
        self.activities.append(record)
        return record


class HttpCrmStore(CrmStore):
    """
    Creates records through the host CRM's REST API.

    The tenant is sent as the ``X-Tenant-ID`` header.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _create(self, path: str, tenant_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        client = await self._get_client()
        try:
            response = await client.post(path, json=fields, headers={"X-Tenant-ID": tenant_id})
        except httpx.HTTPError as e:
            raise CrmStoreError(f"CRM request failed: {e}")

        if response.status_code not in (200, 201):
            raise CrmStoreError(f"CRM rejected {path}: {response.status_code} - {response.text}")

        record = response.json()
        if "id" not in record:
            raise CrmStoreError(f"CRM response for {path} has no id")
        return record

    async def create_lead(self, tenant_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        return await self._create("/api/leads", tenant_id, fields)

    async def create_activity(self, tenant_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        return await self._create("/api/activities", tenant_id, fields)
