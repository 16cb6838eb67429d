"""
Shared fixtures: in-memory repository, fake AI service and graph builders.
"""
import asyncio
from typing import Any, Dict, List, Optional

import pytest

from workflow_engine.config import Config
from workflow_engine.engine.actions import ActionDispatcher, ActionServices
from workflow_engine.engine.recorder import ExecutionRecorder
from workflow_engine.engine.scheduler import Scheduler
from workflow_engine.engine.store import WorkflowStore
from workflow_engine.engine.walker import GraphWalker
from workflow_engine.errors import AIServiceError
from workflow_engine.manager import WorkflowManager
from workflow_engine.models.workflow import WorkflowCreate, WorkflowEdge, WorkflowNode
from workflow_engine.persistence.memory import InMemoryWorkflowRepository
from workflow_engine.tools.crm import InMemoryCrmStore
from workflow_engine.tools.notifications import InternalFeedChannel, NotificationDispatcher


class FakeAIService:
    """Canned AI responses; optionally slow or failing."""

    def __init__(
        self,
        classification: str = "Lead Inquiry",
        confidence: float = 90.0,
        delay: float = 0.0,
        error: Optional[Exception] = None,
    ):
        self.classification = classification
        self.confidence = confidence
        self.delay = delay
        self.error = error
        self.calls: List[tuple] = []

    async def _call(self, name: str, *args):
        self.calls.append((name, *args))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error

    async def classify(self, text: str) -> Dict[str, Any]:
        await self._call("classify", text)
        return {
            "classification": self.classification,
            "confidence": self.confidence,
            "nextAction": "Schedule a demo",
        }

    async def summarize(self, text: str) -> Dict[str, Any]:
        await self._call("summarize", text)
        return {"summary": "Prospect wants a demo"}

    async def generate_reply(self, text: str, tone: str = "professional", context: str = "") -> Dict[str, Any]:
        await self._call("generate_reply", text, tone, context)
        return {"reply": f"Thanks for reaching out ({tone})", "tone": tone}


def node(node_id: str, node_type: str, **data) -> WorkflowNode:
    return WorkflowNode(id=node_id, type=node_type, data=data)


def edge(source: str, target: str, branch: Optional[bool] = None, edge_id: Optional[str] = None) -> WorkflowEdge:
    return WorkflowEdge(id=edge_id or f"{source}->{target}", source=source, target=target, branch=branch)


def lead_inquiry_workflow(**overrides) -> WorkflowCreate:
    """trigger → ai_classify → condition(Lead Inquiry) → create_lead → send_notification"""
    fields = dict(
        name="Lead inquiry",
        trigger="email_received",
        nodes=[
            node("trigger-1", "trigger"),
            node(
                "classify", "ai_classify",
                emailSubject="{{trigger.subject}}",
                emailFrom="{{trigger.from}}",
                emailPreview="{{trigger.preview}}",
            ),
            node("is-lead", "condition", field="{{classify.classification}}", operator="equals", value="Lead Inquiry"),
            node("lead", "create_lead", title="{{trigger.subject}}", contactId="{{trigger.contactId}}"),
            node("notify", "send_notification", message="New lead: {{lead.title}}", channel="internal"),
        ],
        edges=[
            edge("trigger-1", "classify"),
            edge("classify", "is-lead"),
            edge("is-lead", "lead", branch=True),
            edge("lead", "notify"),
        ],
    )
    fields.update(overrides)
    return WorkflowCreate(**fields)


@pytest.fixture
def settings() -> Config:
    return Config(
        database_url="memory://",
        ai_timeout_seconds=0.5,
        record_timeout_seconds=0.5,
        notification_timeout_seconds=0.5,
        default_timeout_seconds=0.5,
        inline_delay_max_seconds=0.2,
        worker_pool_size=2,
        worker_queue_size=4,
    )


@pytest.fixture
def repository() -> InMemoryWorkflowRepository:
    return InMemoryWorkflowRepository()


@pytest.fixture
def ai() -> FakeAIService:
    return FakeAIService()


@pytest.fixture
def crm() -> InMemoryCrmStore:
    return InMemoryCrmStore()


@pytest.fixture
def feed() -> InternalFeedChannel:
    return InternalFeedChannel()


@pytest.fixture
def notifications(feed) -> NotificationDispatcher:
    return NotificationDispatcher([feed])


@pytest.fixture
def services(ai, crm, notifications) -> ActionServices:
    return ActionServices(ai=ai, crm=crm, notifications=notifications)


@pytest.fixture
def store(repository) -> WorkflowStore:
    return WorkflowStore(repository)


@pytest.fixture
def recorder(repository) -> ExecutionRecorder:
    return ExecutionRecorder(repository)


@pytest.fixture
def scheduler(settings) -> Scheduler:
    return Scheduler(settings)


@pytest.fixture
def walker(recorder, services, scheduler, settings) -> GraphWalker:
    return GraphWalker(recorder, ActionDispatcher(), services, scheduler=scheduler, settings=settings)


@pytest.fixture
def manager(repository, ai, crm, notifications, settings) -> WorkflowManager:
    return WorkflowManager.create(repository, ai=ai, crm=crm, notifications=notifications, settings=settings)
