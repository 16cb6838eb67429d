"""
External collaborators used by node handlers.
"""

from .llm_client import LLMClient
from .ai_service import AIService
from .crm import CrmStore, InMemoryCrmStore, HttpCrmStore
from .notifications import (
    NotificationChannel,
    NotificationDispatcher,
    InternalFeedChannel,
    WebhookChannel,
    EmailChannel,
)

__all__ = [
    "LLMClient",
    "AIService",
    "CrmStore",
    "InMemoryCrmStore",
    "HttpCrmStore",
    "NotificationChannel",
    "NotificationDispatcher",
    "InternalFeedChannel",
    "WebhookChannel",
    "EmailChannel",
]
