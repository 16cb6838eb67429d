"""
Action dispatch table: one handler per node type.

Handlers never touch the execution context; they return a ``NodeResult`` that
the graph walker folds in once the dispatch has returned.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..errors import ActionDispatchError
from ..models.nodes import (
    AIClassifyConfig,
    AIGenerateReplyConfig,
    AISummarizeConfig,
    ConditionConfig,
    CreateActivityConfig,
    CreateLeadConfig,
    DelayConfig,
    NodeConfig,
    NodeType,
    SendNotificationConfig,
)
from ..models.workflow import WorkflowNode
from ..tools.ai_service import AIService
from ..tools.crm import CrmStore
from ..tools.notifications import NotificationDispatcher
from .conditions import evaluate_condition
from .context import ExecutionContext
from .templating import resolve_config

logger = logging.getLogger(__name__)

LEAD_FIELDS = ("title", "description", "value", "status", "contact_id", "company_id")
ACTIVITY_FIELDS = ("type", "title", "description", "contact_id", "lead_id")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Suspension:
    """Marker returned by delay nodes; the walker decides how to wait."""
    wake_at: datetime
    seconds: float


@dataclass
class NodeResult:
    """What a handler produced for one node."""
    output: Any = None
    warnings: List[str] = field(default_factory=list)
    branch: Optional[bool] = None
    suspension: Optional[Suspension] = None


@dataclass
class ActionServices:
    """Collaborators and identity handed to every dispatch."""
    ai: AIService
    crm: CrmStore
    notifications: NotificationDispatcher
    tenant_id: str = "default"
    workflow_id: Optional[str] = None
    execution_id: Optional[str] = None
    clock: Callable[[], datetime] = utcnow

    def for_execution(self, tenant_id: str, workflow_id: Optional[str], execution_id: Optional[str]) -> "ActionServices":
        return ActionServices(
            ai=self.ai,
            crm=self.crm,
            notifications=self.notifications,
            tenant_id=tenant_id,
            workflow_id=workflow_id,
            execution_id=execution_id,
            clock=self.clock,
        )


def error_is_fatal(node: WorkflowNode) -> bool:
    """
    Whether a dispatch error on this node ends its branch.

    ``required`` in the node data decides; otherwise every type is fatal except
    ``send_notification``.
    """
    required = node.config.required
    if required is not None:
        return required
    return node.type != NodeType.SEND_NOTIFICATION


def _email_text(sender: str, subject: str, body_label: str, body: str) -> str:
    return f"From: {sender}\nSubject: {subject}\n{body_label}: {body}"


def _pick(record: Dict[str, Any], keys) -> Dict[str, Any]:
    return {"id": record.get("id"), **{key: record.get(key) for key in keys if key in record}}


Handler = Callable[[WorkflowNode, NodeConfig, ExecutionContext, ActionServices], Awaitable[NodeResult]]


class ActionDispatcher:
    """Maps a node's type to its handler."""

    def __init__(self):
        self._handlers: Dict[NodeType, Handler] = {
            NodeType.TRIGGER: self._trigger,
            NodeType.AI_CLASSIFY: self._ai_classify,
            NodeType.AI_SUMMARIZE: self._ai_summarize,
            NodeType.AI_GENERATE_REPLY: self._ai_generate_reply,
            NodeType.CREATE_LEAD: self._create_lead,
            NodeType.CREATE_ACTIVITY: self._create_activity,
            NodeType.SEND_NOTIFICATION: self._send_notification,
            NodeType.CONDITION: self._condition,
            NodeType.DELAY: self._delay,
        }

    def register(self, node_type: NodeType, handler: Handler):
        """Replace the handler for a node type."""
        self._handlers[node_type] = handler

    async def dispatch(
        self,
        node: WorkflowNode,
        context: ExecutionContext,
        services: ActionServices,
    ) -> NodeResult:
        """
        Run the handler for a node.

        Args:
            node: Node to execute
            context: Read-only view of upstream outputs
            services: Collaborator bundle for this execution

        Returns:
            The node's result

        Raises:
            ActionDispatchError: Tagged with the node id and type
        """
        handler = self._handlers.get(node.type)
        if handler is None:
            raise ActionDispatchError(f"No handler for node type {node.type}", node.id, str(node.type))

        try:
            return await handler(node, node.config, context, services)
        except ActionDispatchError as e:
            e.node_id = node.id
            e.node_type = node.type.value
            raise
        except Exception as e:
            raise ActionDispatchError(str(e) or type(e).__name__, node.id, node.type.value) from e

    async def _trigger(self, node, config, context, services) -> NodeResult:
        return NodeResult(output=context.trigger)

    async def _ai_classify(self, node, config: AIClassifyConfig, context, services) -> NodeResult:
        resolved, warnings = resolve_config(config, context)
        text = resolved.text or _email_text(
            resolved.email_from, resolved.email_subject, "Preview", resolved.email_preview
        )
        result = await services.ai.classify(text)
        return NodeResult(output=result, warnings=warnings)

    async def _ai_summarize(self, node, config: AISummarizeConfig, context, services) -> NodeResult:
        resolved, warnings = resolve_config(config, context)
        text = resolved.text or _email_text(
            resolved.email_from, resolved.email_subject, "Body", resolved.email_body
        )
        result = await services.ai.summarize(text)
        return NodeResult(output=result, warnings=warnings)

    async def _ai_generate_reply(self, node, config: AIGenerateReplyConfig, context, services) -> NodeResult:
        resolved, warnings = resolve_config(config, context, exclude=("tone",))
        result = await services.ai.generate_reply(resolved.email_content, resolved.tone, resolved.context)
        return NodeResult(output=result, warnings=warnings)

    async def _create_lead(self, node, config: CreateLeadConfig, context, services) -> NodeResult:
        resolved, warnings = resolve_config(config, context)

        if not resolved.contact_id:
            logger.warning(f"Skipping lead creation in node {node.id}: contactId not provided or unresolved")
            return NodeResult(
                output={"skipped": True, "reason": "contactId not provided or unresolved"},
                warnings=warnings,
            )

        value = resolved.value
        if isinstance(value, str):
            value = value.strip() or None
        if value is not None:
            try:
                value = int(float(value))
            except (ValueError, OverflowError):
                warnings.append(f"Lead value {resolved.value!r} is not a number; omitted")
                value = None

        fields = {
            "title": resolved.title or "Untitled Lead",
            "description": resolved.description or None,
            "value": value,
            "status": resolved.status or "prospect",
            "contact_id": resolved.contact_id,
            "company_id": resolved.company_id or None,
            "source": "workflow",
            "workflow_id": services.workflow_id,
        }
        record = await services.crm.create_lead(services.tenant_id, fields)
        return NodeResult(output=_pick(record, LEAD_FIELDS), warnings=warnings)

    async def _create_activity(self, node, config: CreateActivityConfig, context, services) -> NodeResult:
        resolved, warnings = resolve_config(config, context)
        fields = {
            "type": resolved.activity_type or "note",
            "title": resolved.title,
            "description": resolved.description,
            "contact_id": resolved.contact_id or None,
            "lead_id": resolved.lead_id or None,
            "workflow_id": services.workflow_id,
        }
        record = await services.crm.create_activity(services.tenant_id, fields)
        return NodeResult(output=_pick(record, ACTIVITY_FIELDS), warnings=warnings)

    async def _send_notification(self, node, config: SendNotificationConfig, context, services) -> NodeResult:
        resolved, warnings = resolve_config(config, context)
        ack = await services.notifications.send(
            resolved.channel,
            resolved.message,
            recipient=resolved.recipient or None,
            metadata={
                "workflow_id": services.workflow_id,
                "execution_id": services.execution_id,
                "node_id": node.id,
            },
        )
        return NodeResult(output=ack, warnings=warnings)

    async def _condition(self, node, config: ConditionConfig, context, services) -> NodeResult:
        warnings: List[str] = []
        result = evaluate_condition(config, context, warnings)
        return NodeResult(output=result, warnings=warnings, branch=result)

    async def _delay(self, node, config: DelayConfig, context, services) -> NodeResult:
        seconds = config.seconds()
        wake_at = services.clock() + timedelta(seconds=seconds)
        return NodeResult(
            output={"delayed_seconds": seconds, "wake_at": wake_at.isoformat()},
            suspension=Suspension(wake_at=wake_at, seconds=seconds),
        )
