"""
Workflow manager: the engine's entry points for route handlers and the host app.
"""

import logging
from typing import Any, Dict, List, Optional

from .config import Config, config as default_config
from .engine.actions import ActionDispatcher, ActionServices
from .engine.pool import WorkerPool
from .engine.recorder import ExecutionRecorder, Publisher
from .engine.scheduler import Scheduler
from .engine.store import WorkflowStore
from .engine.triggers import TriggerBinder
from .engine.walker import GraphWalker
from .errors import ExecutionNotFound
from .models.execution import ExecutionStatus, WorkflowExecution
from .models.template import WorkflowTemplate
from .models.workflow import TriggerType, WorkflowCreate, WorkflowDefinition, WorkflowUpdate
from .persistence.repository import WorkflowRepository
from .templates import BUILTIN_TEMPLATES
from .tools.ai_service import AIService
from .tools.crm import CrmStore
from .tools.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)


class WorkflowManager:
    """Manages workflow definitions and their executions."""

    def __init__(
        self,
        store: WorkflowStore,
        recorder: ExecutionRecorder,
        walker: GraphWalker,
        binder: TriggerBinder,
        pool: WorkerPool,
        scheduler: Scheduler,
    ):
        self.store = store
        self.recorder = recorder
        self.walker = walker
        self.binder = binder
        self.pool = pool
        self.scheduler = scheduler

    @classmethod
    def create(
        cls,
        repository: WorkflowRepository,
        ai: AIService,
        crm: CrmStore,
        notifications: NotificationDispatcher,
        settings: Optional[Config] = None,
        publisher: Optional[Publisher] = None,
        dispatcher: Optional[ActionDispatcher] = None,
    ) -> "WorkflowManager":
        """Wire the engine components around a repository and collaborators."""
        settings = settings or default_config
        scheduler = Scheduler(settings)
        recorder = ExecutionRecorder(repository, publisher=publisher)
        store = WorkflowStore(repository)
        walker = GraphWalker(
            recorder,
            dispatcher or ActionDispatcher(),
            ActionServices(ai=ai, crm=crm, notifications=notifications),
            scheduler=scheduler,
            settings=settings,
        )
        pool = WorkerPool(settings.worker_pool_size, settings.worker_queue_size)
        binder = TriggerBinder(store, walker, pool)
        scheduler.binder = binder
        scheduler.recorder = recorder
        return cls(store, recorder, walker, binder, pool, scheduler)

    async def start(self, seed: bool = True):
        """Seed the template catalog and start the workers and the scheduler."""
        if seed:
            inserted = await self.store.seed_templates(BUILTIN_TEMPLATES)
            logger.info(f"Template catalog ready ({inserted} new)")
        self.pool.start()
        self.scheduler.start()

    async def stop(self):
        await self.scheduler.stop()
        await self.pool.stop(drain=False)

    # Definitions

    async def create_workflow(self, request: WorkflowCreate, tenant_id: str = "default") -> WorkflowDefinition:
        return await self.store.create_workflow(request, tenant_id=tenant_id)

    async def update_workflow(self, workflow_id: str, update: WorkflowUpdate, tenant_id: Optional[str] = None) -> WorkflowDefinition:
        return await self.store.update_workflow(workflow_id, update, tenant_id=tenant_id)

    async def get_workflow(self, workflow_id: str, tenant_id: Optional[str] = None) -> WorkflowDefinition:
        return await self.store.get_workflow(workflow_id, tenant_id)

    async def list_workflows(
        self,
        tenant_id: Optional[str] = None,
        active_only: bool = False,
        trigger: Optional[TriggerType] = None,
        templates: Optional[bool] = None,
    ) -> List[WorkflowDefinition]:
        return await self.store.list_workflows(tenant_id, active_only=active_only, trigger=trigger, templates=templates)

    async def delete_workflow(self, workflow_id: str, tenant_id: Optional[str] = None):
        await self.store.delete_workflow(workflow_id, tenant_id)

    async def set_active(self, workflow_id: str, active: bool, tenant_id: Optional[str] = None) -> WorkflowDefinition:
        return await self.store.set_active(workflow_id, active, tenant_id)

    # Templates

    async def list_templates(self) -> List[WorkflowTemplate]:
        return await self.store.list_templates()

    async def get_template(self, template_id: str) -> WorkflowTemplate:
        return await self.store.get_template(template_id)

    async def clone_template(self, template_id: str, tenant_id: str = "default") -> WorkflowDefinition:
        return await self.store.clone_template(template_id, tenant_id=tenant_id)

    # Executions

    async def execute_workflow(
        self,
        workflow_id: str,
        payload: Optional[Dict[str, Any]] = None,
        tenant_id: Optional[str] = None,
    ) -> WorkflowExecution:
        """
        Manual or test run; works on inactive workflows too.

        Returns:
            The execution once every branch has ended or been deferred

        Raises:
            WorkflowNotFound: Unknown workflow
            DefinitionInvalid: The stored graph fails validation
        """
        workflow = await self.store.get_workflow(workflow_id, tenant_id)
        return await self.walker.run(workflow, payload or {}, trigger=TriggerType.MANUAL.value)

    async def list_executions(
        self,
        workflow_id: str,
        tenant_id: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
        limit: int = 100,
    ) -> List[WorkflowExecution]:
        await self.store.get_workflow(workflow_id, tenant_id)
        return await self.recorder.list_executions(workflow_id, status=status, limit=limit)

    async def get_execution(self, execution_id: str, tenant_id: Optional[str] = None) -> WorkflowExecution:
        execution = await self.recorder.get(execution_id)
        if tenant_id and execution.tenant_id != tenant_id:
            raise ExecutionNotFound(f"Execution not found: {execution_id}")
        return execution

    async def cancel_execution(self, execution_id: str, tenant_id: Optional[str] = None) -> WorkflowExecution:
        """
        Operator cancel: mark the execution failed and stop its traversal.

        Steps already recorded stay; results of in-flight calls are discarded.
        """
        await self.get_execution(execution_id, tenant_id)
        if await self.recorder.cancel(execution_id):
            logger.info(f"Execution {execution_id} cancelled")
        self.walker.cancel(execution_id)
        return await self.recorder.get(execution_id)

    async def handle_event(
        self,
        event_type: str,
        payload: Optional[Dict[str, Any]] = None,
        tenant_id: Optional[str] = None,
    ) -> List[str]:
        """Fire-and-forget start of every active workflow bound to the event."""
        return await self.binder.on_event(event_type, payload, tenant_id=tenant_id)
