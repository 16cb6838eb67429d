"""
Async client for OpenAI-compatible chat completion providers.
"""

import logging
from typing import Optional, Dict, Any, List
import httpx

from ..errors import AIRateLimitError, AIServiceError

logger = logging.getLogger(__name__)


class LLMClient:
    """
    Async HTTP client for the AI provider.

    Provides a simple interface for chat completions made by AI nodes.
    """

    def __init__(
        self,
        base_url: str = "https://openrouter.ai/api",
        api_key: str = "",
        model: str = "mistralai/mistral-7b-instruct:free",
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize LLM client.

        Args:
            base_url: Provider base URL (``/v1/chat/completions`` is appended)
            api_key: API key for authentication
            model: Default model
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                    "X-Title": "CRM Workflow Engine",
                },
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def chat_completion(
        self,
        messages: List[Dict[str, str]],
        model: Optional[str] = None,
        temperature: float = 0.3,
        max_tokens: int = 500,
        **kwargs,
    ) -> str:
        """
        Create a chat completion and return the assistant message text.

        Args:
            messages: List of message dicts
            model: Model to use (defaults to the client's model)
            temperature: Sampling temperature
            max_tokens: Maximum output tokens
            **kwargs: Additional parameters

        Returns:
            Content of the first choice

        Raises:
            AIRateLimitError: Provider answered 429
            AIServiceError: Any other provider or transport failure
        """
        if not self.api_key:
            raise AIServiceError("No AI API key configured")

        client = await self._get_client()

        try:
            response = await client.post(
                "/v1/chat/completions",
                json={
                    "model": model or self.model,
                    "messages": messages,
                    "temperature": temperature,
                    "max_tokens": max_tokens,
                    **kwargs,
                }
            )
        except httpx.TimeoutException as e:
            raise AIServiceError(f"AI request timed out: {e}")
        except httpx.HTTPError as e:
            raise AIServiceError(f"AI request failed: {e}")

        if response.status_code == 429:
            retry_after = response.headers.get("retry-after")
            raise AIRateLimitError(
                "AI provider rate limit exceeded",
                retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None,
            )

        if response.status_code != 200:
            raise AIServiceError(f"AI request failed: {response.status_code} - {response.text}")

        try:
            data = response.json()
            return data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise AIServiceError(f"Malformed AI response: {e}")
