"""
Unit tests for the AI provider client and reply parsing.
"""
import json

import httpx
import pytest

from workflow_engine.errors import AIRateLimitError, AIServiceError
from workflow_engine.tools.ai_service import AIService, parse_classification
from workflow_engine.tools.llm_client import LLMClient


def completion(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def client_for(handler, api_key: str = "test-key") -> LLMClient:
    return LLMClient(
        base_url="https://llm.test/api",
        api_key=api_key,
        model="test-model",
        transport=httpx.MockTransport(handler),
    )


class TestParseClassification:
    """Tolerant parsing of model output."""

    def test_plain_json(self):
        result = parse_classification('{"classification": "Negotiation", "confidence": 72, "nextAction": "Send terms"}')
        assert result == {"classification": "Negotiation", "confidence": 72.0, "nextAction": "Send terms"}

    def test_code_fence_and_special_tokens(self):
        raw = '<s> ```json\n{"classification": "Lead Inquiry", "confidence": "91"}\n``` </s>'
        result = parse_classification(raw)
        assert result["classification"] == "Lead Inquiry"
        assert result["confidence"] == 91.0
        assert result["nextAction"] == "Review and respond"

    def test_json_inside_prose(self):
        raw = 'Sure! Here is the answer: {"classification": "Other", "confidence": 10} Hope this helps.'
        assert parse_classification(raw)["classification"] == "Other"

    def test_confidence_clamped_and_defaulted(self):
        assert parse_classification('{"classification": "Other", "confidence": 150}')["confidence"] == 100.0
        assert parse_classification('{"classification": "Other", "confidence": "high"}')["confidence"] == 50.0
        assert parse_classification('{"next_action": "Call"}') == {
            "classification": "Other",
            "confidence": 50.0,
            "nextAction": "Call",
        }

    def test_unparseable_reply(self):
        with pytest.raises(AIServiceError):
            parse_classification("I think this is a lead inquiry.")


class TestLLMClient:
    """HTTP behavior against a mocked provider."""

    @pytest.mark.asyncio
    async def test_chat_completion_request(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=completion("hello"))

        client = client_for(handler)
        try:
            text = await client.chat_completion([{"role": "user", "content": "hi"}], max_tokens=10)
        finally:
            await client.close()

        assert text == "hello"
        assert seen["url"] == "https://llm.test/api/v1/chat/completions"
        assert seen["auth"] == "Bearer test-key"
        assert seen["body"]["model"] == "test-model"
        assert seen["body"]["max_tokens"] == 10

    @pytest.mark.asyncio
    async def test_rate_limit(self):
        client = client_for(lambda request: httpx.Response(429, headers={"retry-after": "12"}))

        with pytest.raises(AIRateLimitError) as exc_info:
            await client.chat_completion([{"role": "user", "content": "hi"}])
        assert exc_info.value.retry_after == 12.0
        await client.close()

    @pytest.mark.asyncio
    async def test_provider_error(self):
        client = client_for(lambda request: httpx.Response(500, text="upstream down"))

        with pytest.raises(AIServiceError) as exc_info:
            await client.chat_completion([{"role": "user", "content": "hi"}])
        assert "500" in exc_info.value.message
        await client.close()

    @pytest.mark.asyncio
    async def test_malformed_response(self):
        client = client_for(lambda request: httpx.Response(200, json={"choices": []}))

        with pytest.raises(AIServiceError):
            await client.chat_completion([{"role": "user", "content": "hi"}])
        await client.close()

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = client_for(handler)
        with pytest.raises(AIServiceError) as exc_info:
            await client.chat_completion([{"role": "user", "content": "hi"}])
        assert "refused" in exc_info.value.message
        await client.close()

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        client = client_for(lambda request: httpx.Response(200, json=completion("x")), api_key="")
        with pytest.raises(AIServiceError, match="No AI API key"):
            await client.chat_completion([{"role": "user", "content": "hi"}])


class TestAIService:
    """Prompting and result shapes."""

    @pytest.mark.asyncio
    async def test_classify(self):
        prompts = []

        def handler(request):
            prompts.append(json.loads(request.content)["messages"][0]["content"])
            return httpx.Response(200, json=completion(
                '{"classification": "Meeting Request", "confidence": 80, "nextAction": "Propose times"}'
            ))

        service = AIService(client_for(handler))
        result = await service.classify("Subject: Can we meet Tuesday?")

        assert result["classification"] == "Meeting Request"
        assert result["nextAction"] == "Propose times"
        assert "Subject: Can we meet Tuesday?" in prompts[0]
        assert "- Lead Inquiry" in prompts[0]
        await service.llm_client.close()

    @pytest.mark.asyncio
    async def test_summarize_and_reply(self):
        service = AIService(client_for(lambda request: httpx.Response(200, json=completion("  Short text.  "))))

        assert await service.summarize("body") == {"summary": "Short text."}
        assert await service.generate_reply("body", tone="persuasive") == {"reply": "Short text.", "tone": "persuasive"}
        await service.llm_client.close()
