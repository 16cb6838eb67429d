"""
AI collaborator used by ai_classify, ai_summarize and ai_generate_reply nodes.
"""

import json
import logging
import re
from typing import Any, Dict

from ..errors import AIServiceError
from .llm_client import LLMClient

logger = logging.getLogger(__name__)

CATEGORIES = [
    ("Lead Inquiry", "new potential customer asking about products/services"),
    ("Follow-up", "continuing an existing conversation"),
    ("Negotiation", "discussing terms, pricing, or contracts"),
    ("Meeting Request", "scheduling or confirming meetings"),
    ("Support Request", "technical or customer service issues"),
    ("Closed Won", "deal completed successfully"),
    ("Closed Lost", "deal not pursued or lost"),
    ("Other", "doesn't fit other categories"),
]

TONE_INSTRUCTIONS = {
    "professional": "Write in a professional, business-appropriate tone.",
    "friendly": "Write in a warm, friendly tone while maintaining professionalism.",
    "persuasive": "Write persuasively to encourage action or agreement.",
}

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def parse_classification(raw: str) -> Dict[str, Any]:
    """
    Parse a classification reply into label, confidence and next action.

    Strips code fences and model special tokens, then reads the first JSON
    object in the text. Confidence is clamped to 0-100.

    Raises:
        AIServiceError: If no JSON object can be decoded
    """
    cleaned = raw.strip()
    cleaned = re.sub(r"```json\n?", "", cleaned)
    cleaned = re.sub(r"```\n?", "", cleaned)
    cleaned = cleaned.replace("<s>", "").replace("</s>", "")
    cleaned = re.sub(r"^\s*<[^>]+>\s*", "", cleaned).strip()

    match = _JSON_OBJECT.search(cleaned)
    if match:
        cleaned = match.group(0)

    try:
        result = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise AIServiceError(f"Could not parse classification: {e}")
    if not isinstance(result, dict):
        raise AIServiceError("Classification reply is not a JSON object")

    try:
        confidence = float(result.get("confidence", 50))
    except (TypeError, ValueError):
        confidence = 50.0

    return {
        "classification": result.get("classification") or "Other",
        "confidence": min(100.0, max(0.0, confidence)),
        "nextAction": result.get("nextAction") or result.get("next_action") or "Review and respond",
    }


class AIService:
    """
    Email classification, summarization and reply generation.

    Every method may raise ``AIServiceError`` (or ``AIRateLimitError``); the
    action dispatch table records those as node errors.
    """

    def __init__(self, llm_client: LLMClient):
        self.llm_client = llm_client

    async def classify(self, text: str) -> Dict[str, Any]:
        """
        Classify an email into one of the sales categories.

        Returns:
            ``{"classification", "confidence", "nextAction"}``
        """
        categories = "\n".join(f"- {name} ({hint})" for name, hint in CATEGORIES)
        prompt = (
            "You are an AI sales assistant. Classify the following email and provide "
            "a confidence score (0-100) and suggested next action.\n\n"
            f"{text}\n\n"
            f"Classify this email into one of these categories:\n{categories}\n\n"
            "Respond ONLY with valid JSON in this exact format:\n"
            '{"classification": "category name", "confidence": 85, '
            '"nextAction": "Brief suggested action (max 100 chars)"}'
        )
        raw = await self.llm_client.chat_completion(
            [{"role": "user", "content": prompt}],
            max_tokens=200,
        )
        return parse_classification(raw)

    async def summarize(self, text: str) -> Dict[str, Any]:
        """Summarize an email in 2-3 sentences."""
        prompt = (
            "Summarize the following email in 2-3 concise sentences. Focus on key points, "
            "requests, and action items.\n\n"
            f"{text}\n\n"
            "Provide a clear, professional summary:"
        )
        summary = await self.llm_client.chat_completion(
            [{"role": "user", "content": prompt}],
            max_tokens=150,
        )
        return {"summary": summary.strip()}

    async def generate_reply(self, text: str, tone: str = "professional", context: str = "") -> Dict[str, Any]:
        """Draft a reply to an email in the requested tone."""
        instructions = TONE_INSTRUCTIONS.get(tone, TONE_INSTRUCTIONS["professional"])
        background = f"\nContext: {context}\n" if context else ""
        prompt = (
            f"You are a sales professional writing a reply to this email. {instructions}\n"
            f"{background}\n"
            f"Original Email:\n{text}\n\n"
            "Write a clear, concise reply that addresses the main points:"
        )
        reply = await self.llm_client.chat_completion(
            [{"role": "user", "content": prompt}],
            max_tokens=300,
        )
        return {"reply": reply.strip(), "tone": tone}
