"""
Trigger binder: matches business events and schedule ticks to active workflows.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from croniter import croniter

from ..errors import DefinitionInvalid
from ..models.workflow import TriggerType, WorkflowDefinition
from .pool import WorkerPool
from .store import WorkflowStore
from .walker import GraphWalker

logger = logging.getLogger(__name__)

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

# Canonical trigger key -> alternative spellings seen in event payloads
PAYLOAD_ALIASES: Dict[TriggerType, Dict[str, Tuple[str, ...]]] = {
    TriggerType.EMAIL_RECEIVED: {
        "from": ("sender", "fromEmail", "from_email"),
        "preview": ("snippet", "bodyPreview"),
        "body": ("text", "content"),
        "contactId": ("contact_id",),
        "leadId": ("lead_id",),
        "threadId": ("thread_id",),
    },
    TriggerType.LEAD_CREATED: {
        "leadId": ("lead_id", "id"),
        "contactId": ("contact_id",),
        "companyId": ("company_id",),
    },
}

PREVIEW_LENGTH = 200
MAX_CATCH_UP_MINUTES = 60


def shape_payload(trigger: TriggerType, payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Build the trigger payload in the shape definitions reference
    (``{{trigger.subject}}``, ``{{trigger.contactId}}`` ...).

    Original keys are kept; canonical keys are filled from their aliases.
    """
    shaped = dict(payload)
    for key, aliases in PAYLOAD_ALIASES.get(trigger, {}).items():
        if shaped.get(key) not in (None, ""):
            continue
        for alias in aliases:
            if shaped.get(alias) not in (None, ""):
                shaped[key] = shaped[alias]
                break

    if trigger == TriggerType.EMAIL_RECEIVED and not shaped.get("preview") and shaped.get("body"):
        shaped["preview"] = str(shaped["body"])[:PREVIEW_LENGTH]

    shaped.setdefault("eventType", trigger.value)
    return shaped


def matches_filters(trigger_config: Dict[str, Any], payload: Dict[str, Any]) -> bool:
    """
    Apply ``source`` and ``filter`` from a workflow's trigger configuration.

    ``source`` must equal the event's source when both are present.
    ``filter: "label:<name>"`` requires the label among the event's labels.
    """
    source = trigger_config.get("source")
    if source and payload.get("source") and payload["source"] != source:
        return False

    event_filter = trigger_config.get("filter")
    if isinstance(event_filter, str) and event_filter.startswith("label:"):
        label = event_filter[len("label:"):].strip()
        labels = payload.get("labels") or []
        if isinstance(labels, str):
            labels = [labels]
        if label not in labels:
            return False

    return True


def _parse_time(value: str) -> Tuple[int, int]:
    hour, _, minute = str(value).partition(":")
    return int(hour), int(minute or 0)


def schedule_matches(trigger_config: Dict[str, Any], moment: datetime) -> bool:
    """
    Whether a scheduled workflow is due in the minute containing ``moment``.

    Accepts ``{"cron": expr}``, ``{"schedule": "hourly", "minute": m}``,
    ``{"schedule": "daily", "time": "HH:MM"}``,
    ``{"schedule": "weekly", "day": "monday", "time": "HH:MM"}`` or a cron
    expression given directly as ``schedule``.
    """
    cron = trigger_config.get("cron")
    schedule = str(trigger_config.get("schedule") or "").strip().lower()

    try:
        if cron:
            return croniter.match(cron, moment)
        if schedule == "hourly":
            return moment.minute == int(trigger_config.get("minute", 0))
        if schedule == "daily":
            return (moment.hour, moment.minute) == _parse_time(trigger_config.get("time", "00:00"))
        if schedule == "weekly":
            day = str(trigger_config.get("day", "monday")).lower()
            if day not in WEEKDAYS:
                raise ValueError(f"unknown weekday '{day}'")
            return (
                WEEKDAYS[moment.weekday()] == day
                and (moment.hour, moment.minute) == _parse_time(trigger_config.get("time", "00:00"))
            )
        if schedule and croniter.is_valid(schedule):
            return croniter.match(schedule, moment)
    except (ValueError, KeyError) as e:
        logger.warning(f"Invalid schedule {trigger_config}: {e}")
        return False

    return False


class TriggerBinder:
    """
    Selects active workflows for an event and submits one execution each.

    Execution records are opened before submission so callers get ids back
    immediately; the walk itself runs on the worker pool.
    """

    def __init__(self, store: WorkflowStore, walker: GraphWalker, pool: WorkerPool):
        self.store = store
        self.walker = walker
        self.pool = pool
        self._last_fired: Dict[str, datetime] = {}
        self._last_tick: Optional[datetime] = None

    async def on_event(
        self,
        event_type: str,
        payload: Optional[Dict[str, Any]] = None,
        tenant_id: Optional[str] = None,
    ) -> List[str]:
        """
        Start every active workflow whose trigger matches the event.

        Args:
            event_type: email_received, lead_created, manual or scheduled
            payload: Event data
            tenant_id: Restrict matching to one tenant

        Returns:
            Ids of the executions opened
        """
        try:
            trigger = TriggerType(event_type)
        except ValueError:
            logger.warning(f"Ignoring unknown event type: {event_type}")
            return []

        payload = payload or {}
        workflows = await self.store.list_workflows(tenant_id, active_only=True, trigger=trigger)
        matched = [w for w in workflows if matches_filters(w.trigger_config, payload)]
        logger.info(f"Event {trigger.value}: {len(matched)} of {len(workflows)} active workflow(s) matched")

        shaped = shape_payload(trigger, payload)
        execution_ids = []
        for workflow in matched:
            execution_id = await self._submit(workflow, shaped, trigger)
            if execution_id:
                execution_ids.append(execution_id)
        return execution_ids

    async def on_tick(self, now: Optional[datetime] = None) -> List[str]:
        """
        Fire scheduled workflows due since the previous tick.

        Each workflow fires at most once per minute, and at most once per tick
        even if a late tick covers several matching minutes.
        """
        now = (now or datetime.now(timezone.utc)).replace(second=0, microsecond=0)
        if self._last_tick is None or now <= self._last_tick:
            minutes = [now]
        else:
            gap = int((now - self._last_tick).total_seconds() // 60)
            start = now - timedelta(minutes=min(gap, MAX_CATCH_UP_MINUTES) - 1)
            minutes = [start + timedelta(minutes=i) for i in range(min(gap, MAX_CATCH_UP_MINUTES))]
        self._last_tick = now

        workflows = await self.store.list_workflows(active_only=True, trigger=TriggerType.SCHEDULED)
        execution_ids = []
        for workflow in workflows:
            due = [m for m in minutes if schedule_matches(workflow.trigger_config, m)]
            if not due or self._last_fired.get(workflow.id) == due[-1]:
                continue
            self._last_fired[workflow.id] = due[-1]

            payload = dict(workflow.trigger_config.get("payload") or {})
            payload.update({"eventType": TriggerType.SCHEDULED.value, "scheduledAt": due[-1].isoformat()})
            execution_id = await self._submit(workflow, payload, TriggerType.SCHEDULED)
            if execution_id:
                execution_ids.append(execution_id)

        if execution_ids:
            logger.info(f"Schedule tick {now.isoformat()}: started {len(execution_ids)} execution(s)")
        return execution_ids

    async def _submit(self, workflow: WorkflowDefinition, payload: Dict[str, Any], trigger: TriggerType) -> Optional[str]:
        try:
            traversal = await self.walker.prepare(workflow, payload, trigger=trigger.value)
        except DefinitionInvalid as e:
            logger.error(f"Skipping invalid workflow {workflow.id}: {e}")
            return None

        await self.pool.submit(traversal.execution_id, self.walker.execute, traversal)
        return traversal.execution_id
