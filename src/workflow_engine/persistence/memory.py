"""
In-process repository used when ``DATABASE_URL`` is ``memory://`` and in tests.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

from ..models.workflow import WorkflowDefinition, TriggerType
from ..models.template import WorkflowTemplate
from ..models.execution import WorkflowExecution, ExecutionStatus, StepRecord
from .repository import WorkflowRepository

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryWorkflowRepository(WorkflowRepository):
    """
    Dict-backed repository.

    Every read and write goes through a deep copy so callers never share model
    instances with the store, the same isolation a database round trip gives.
    """

    def __init__(self):
        self._workflows: Dict[str, WorkflowDefinition] = {}
        self._templates: Dict[str, WorkflowTemplate] = {}
        self._executions: Dict[str, WorkflowExecution] = {}
        self._lock = asyncio.Lock()

    async def init_tables(self):
        logger.info("Using in-memory workflow repository")

    # Workflow Definitions

    async def create_workflow(self, workflow: WorkflowDefinition) -> WorkflowDefinition:
        now = _now()
        stored = workflow.model_copy(deep=True)
        stored.id = workflow.id or str(uuid.uuid4())
        stored.created_at = now
        stored.updated_at = now
        async with self._lock:
            self._workflows[stored.id] = stored
        return stored.model_copy(deep=True)

    async def get_workflow(self, workflow_id: str, tenant_id: Optional[str] = None) -> Optional[WorkflowDefinition]:
        workflow = self._workflows.get(workflow_id)
        if workflow is None or (tenant_id and workflow.tenant_id != tenant_id):
            return None
        return workflow.model_copy(deep=True)

    async def list_workflows(
        self,
        tenant_id: Optional[str] = None,
        active_only: bool = False,
        trigger: Optional[TriggerType] = None,
    ) -> List[WorkflowDefinition]:
        workflows = []
        for workflow in self._workflows.values():
            if tenant_id and workflow.tenant_id != tenant_id:
                continue
            if active_only and not workflow.is_active:
                continue
            if trigger and workflow.trigger != TriggerType(trigger):
                continue
            workflows.append(workflow.model_copy(deep=True))
        return workflows

    async def replace_workflow(self, workflow: WorkflowDefinition) -> WorkflowDefinition:
        async with self._lock:
            current = self._workflows.get(workflow.id)
            if current is None:
                raise KeyError(workflow.id)
            stored = workflow.model_copy(deep=True)
            stored.created_at = current.created_at
            stored.execution_count = current.execution_count
            stored.last_executed_at = current.last_executed_at
            stored.updated_at = _now()
            self._workflows[stored.id] = stored
        return stored.model_copy(deep=True)

    async def delete_workflow(self, workflow_id: str) -> bool:
        async with self._lock:
            if self._workflows.pop(workflow_id, None) is None:
                return False
            for execution_id in [e.id for e in self._executions.values() if e.workflow_id == workflow_id]:
                del self._executions[execution_id]
        return True

    # Templates

    async def create_template(self, template: WorkflowTemplate) -> WorkflowTemplate:
        stored = template.model_copy(deep=True)
        stored.id = template.id or str(uuid.uuid4())
        stored.created_at = _now()
        async with self._lock:
            if any(t.name == stored.name for t in self._templates.values()):
                raise ValueError(f"Template already exists: {stored.name}")
            self._templates[stored.id] = stored
        return stored.model_copy(deep=True)

    async def get_template(self, template_id: str) -> Optional[WorkflowTemplate]:
        template = self._templates.get(template_id)
        return template.model_copy(deep=True) if template else None

    async def list_templates(self) -> List[WorkflowTemplate]:
        templates = sorted(self._templates.values(), key=lambda t: (t.category, t.name))
        return [t.model_copy(deep=True) for t in templates]

    # Executions

    async def create_execution(self, execution: WorkflowExecution) -> WorkflowExecution:
        now = _now()
        stored = execution.model_copy(deep=True)
        stored.id = execution.id or str(uuid.uuid4())
        stored.status = ExecutionStatus.RUNNING
        stored.started_at = now
        stored.updated_at = now
        async with self._lock:
            self._executions[stored.id] = stored
        return stored.model_copy(deep=True)

    async def get_execution(self, execution_id: str) -> Optional[WorkflowExecution]:
        execution = self._executions.get(execution_id)
        return execution.model_copy(deep=True) if execution else None

    async def list_executions(
        self,
        workflow_id: Optional[str] = None,
        tenant_id: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
        limit: int = 100,
    ) -> List[WorkflowExecution]:
        executions = [
            e for e in self._executions.values()
            if (not workflow_id or e.workflow_id == workflow_id)
            and (not tenant_id or e.tenant_id == tenant_id)
            and (not status or e.status == ExecutionStatus(status))
        ]
        executions.sort(key=lambda e: e.started_at, reverse=True)
        return [e.model_copy(deep=True) for e in executions[:limit]]

    async def append_step(self, execution_id: str, node_id: str, step: StepRecord) -> bool:
        async with self._lock:
            execution = self._executions.get(execution_id)
            if execution is None or execution.status != ExecutionStatus.RUNNING:
                return False
            execution.execution_data[node_id] = step.model_copy(deep=True)
            execution.updated_at = _now()
            return True

    async def set_waiting(self, execution_id: str, waiting_until: Optional[datetime]) -> None:
        async with self._lock:
            execution = self._executions.get(execution_id)
            if execution is not None:
                execution.waiting_until = waiting_until
                execution.updated_at = _now()

    async def finalize_execution(
        self,
        execution_id: str,
        status: ExecutionStatus,
        error: Optional[str] = None,
    ) -> bool:
        async with self._lock:
            execution = self._executions.get(execution_id)
            if execution is None or execution.status != ExecutionStatus.RUNNING:
                return False

            now = _now()
            execution.status = ExecutionStatus(status)
            execution.error = error
            execution.completed_at = now
            execution.updated_at = now
            execution.waiting_until = None

            workflow = self._workflows.get(execution.workflow_id)
            if workflow is not None:
                workflow.execution_count += 1
                workflow.last_executed_at = now
            return True

    async def list_stale_executions(self, cutoff: datetime) -> List[WorkflowExecution]:
        stale = []
        for execution in self._executions.values():
            if execution.status != ExecutionStatus.RUNNING:
                continue
            last_seen = execution.waiting_until or execution.updated_at or execution.started_at
            if last_seen < cutoff:
                stale.append(execution.model_copy(deep=True))
        return stale
