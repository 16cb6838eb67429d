"""
Unit tests for the CRM record store collaborators.
"""
import json

import httpx
import pytest

from workflow_engine.errors import CrmStoreError
from workflow_engine.tools.crm import HttpCrmStore, InMemoryCrmStore


class TestInMemoryCrmStore:

    @pytest.mark.asyncio
    async def test_records_are_stamped(self):
        store = InMemoryCrmStore()
        lead = await store.create_lead("acme", {"title": "Deal"})
        activity = await store.create_activity("acme", {"title": "Call"})

        assert lead["id"] != activity["id"]
        assert lead["tenant_id"] == "acme"
        assert store.leads == [lead]
        assert store.activities == [activity]


class TestHttpCrmStore:
    """Record creation against a mocked CRM API."""

    @pytest.mark.asyncio
    async def test_create_lead_sends_tenant_header(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["tenant"] = request.headers["x-tenant-id"]
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(201, json={"id": "lead-1", **json.loads(request.content)})

        store = HttpCrmStore("https://crm.test", api_key="secret", transport=httpx.MockTransport(handler))
        record = await store.create_lead("acme", {"title": "Deal"})
        await store.close()

        assert record == {"id": "lead-1", "title": "Deal"}
        assert seen == {"path": "/api/leads", "tenant": "acme", "auth": "Bearer secret"}

    @pytest.mark.asyncio
    async def test_rejected_write(self):
        store = HttpCrmStore(
            "https://crm.test",
            transport=httpx.MockTransport(lambda request: httpx.Response(422, text="contact missing")),
        )
        with pytest.raises(CrmStoreError, match="422"):
            await store.create_activity("acme", {"title": "Call"})
        await store.close()

    @pytest.mark.asyncio
    async def test_response_without_id(self):
        store = HttpCrmStore(
            "https://crm.test",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"ok": True})),
        )
        with pytest.raises(CrmStoreError, match="no id"):
            await store.create_lead("acme", {})
        await store.close()
