"""
REST API routes for the workflow engine.
"""

import logging
from typing import Optional, List

from fastapi import APIRouter, HTTPException, Query, Header

from ..errors import (
    DefinitionInvalid,
    ExecutionNotFound,
    TemplateNotFound,
    WorkflowNotFound,
)
from ..models.workflow import (
    TriggerType,
    WorkflowCreate,
    WorkflowDefinition,
    WorkflowSummary,
    WorkflowUpdate,
)
from ..models.template import WorkflowTemplate
from ..models.execution import (
    EventRequest,
    EventResponse,
    ExecuteRequest,
    ExecutionStatus,
    ExecutionSummary,
    WorkflowExecution,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["workflows"])


# These will be set by the main app
_workflow_manager = None


def set_dependencies(workflow_manager):
    """Set dependencies from main app."""
    global _workflow_manager
    _workflow_manager = workflow_manager


def _manager():
    if not _workflow_manager:
        raise HTTPException(status_code=503, detail="Service not ready")
    return _workflow_manager


def _invalid(e: DefinitionInvalid) -> HTTPException:
    return HTTPException(status_code=400, detail={"message": e.message, "issues": e.issues})


def _summary(execution: WorkflowExecution) -> ExecutionSummary:
    return ExecutionSummary(
        id=execution.id,
        workflow_id=execution.workflow_id,
        status=execution.status,
        error=execution.error,
        started_at=execution.started_at,
        completed_at=execution.completed_at,
        steps=len(execution.execution_data),
    )


# Workflow Definitions

@router.post("/workflows", response_model=WorkflowDefinition, status_code=201)
async def create_workflow(request: WorkflowCreate, x_tenant_id: str = Header(default="default")):
    """Create a new workflow definition."""
    manager = _manager()
    try:
        return await manager.create_workflow(request, tenant_id=x_tenant_id)
    except DefinitionInvalid as e:
        logger.warning(f"Rejected workflow '{request.name}': {e}")
        raise _invalid(e)


@router.get("/workflows", response_model=List[WorkflowSummary])
async def list_workflows(
    active_only: bool = Query(default=False),
    trigger: Optional[TriggerType] = None,
    templates: Optional[bool] = None,
    x_tenant_id: str = Header(default="default"),
):
    """List workflow definitions of the tenant."""
    workflows = await _manager().list_workflows(
        x_tenant_id, active_only=active_only, trigger=trigger, templates=templates
    )
    return [
        WorkflowSummary(
            id=w.id,
            name=w.name,
            description=w.description,
            trigger=w.trigger,
            is_active=w.is_active,
            is_template=w.is_template,
            execution_count=w.execution_count,
            last_executed_at=w.last_executed_at,
        )
        for w in workflows
    ]


@router.get("/workflows/{workflow_id}", response_model=WorkflowDefinition)
async def get_workflow(workflow_id: str, x_tenant_id: str = Header(default="default")):
    """Get a workflow definition by ID."""
    try:
        return await _manager().get_workflow(workflow_id, x_tenant_id)
    except WorkflowNotFound:
        raise HTTPException(status_code=404, detail="Workflow not found")


@router.put("/workflows/{workflow_id}", response_model=WorkflowDefinition)
async def update_workflow(workflow_id: str, update: WorkflowUpdate, x_tenant_id: str = Header(default="default")):
    """Replace a workflow's nodes and edges (and optionally its metadata)."""
    try:
        return await _manager().update_workflow(workflow_id, update, tenant_id=x_tenant_id)
    except WorkflowNotFound:
        raise HTTPException(status_code=404, detail="Workflow not found")
    except DefinitionInvalid as e:
        logger.warning(f"Rejected update of workflow {workflow_id}: {e}")
        raise _invalid(e)


@router.delete("/workflows/{workflow_id}")
async def delete_workflow(workflow_id: str, x_tenant_id: str = Header(default="default")):
    """Delete a workflow and its executions."""
    try:
        await _manager().delete_workflow(workflow_id, x_tenant_id)
    except WorkflowNotFound:
        raise HTTPException(status_code=404, detail="Workflow not found")
    return {"status": "deleted", "workflow_id": workflow_id}


@router.post("/workflows/{workflow_id}/activate", response_model=WorkflowDefinition)
async def activate_workflow(workflow_id: str, x_tenant_id: str = Header(default="default")):
    """Activate a workflow so its trigger fires."""
    try:
        return await _manager().set_active(workflow_id, True, x_tenant_id)
    except WorkflowNotFound:
        raise HTTPException(status_code=404, detail="Workflow not found")
    except DefinitionInvalid as e:
        raise _invalid(e)


@router.post("/workflows/{workflow_id}/deactivate", response_model=WorkflowDefinition)
async def deactivate_workflow(workflow_id: str, x_tenant_id: str = Header(default="default")):
    """Deactivate a workflow."""
    try:
        return await _manager().set_active(workflow_id, False, x_tenant_id)
    except WorkflowNotFound:
        raise HTTPException(status_code=404, detail="Workflow not found")


@router.post("/workflows/{workflow_id}/execute", response_model=WorkflowExecution)
async def execute_workflow(
    workflow_id: str,
    request: Optional[ExecuteRequest] = None,
    x_tenant_id: str = Header(default="default"),
):
    """Run a workflow now against a sample trigger payload."""
    payload = request.payload if request else {}
    try:
        return await _manager().execute_workflow(workflow_id, payload, tenant_id=x_tenant_id)
    except WorkflowNotFound:
        raise HTTPException(status_code=404, detail="Workflow not found")
    except DefinitionInvalid as e:
        raise _invalid(e)


@router.get("/workflows/{workflow_id}/executions", response_model=List[ExecutionSummary])
async def list_executions(
    workflow_id: str,
    status: Optional[ExecutionStatus] = None,
    limit: int = Query(default=100, le=1000),
    x_tenant_id: str = Header(default="default"),
):
    """List executions of a workflow, newest first."""
    try:
        executions = await _manager().list_executions(workflow_id, x_tenant_id, status=status, limit=limit)
    except WorkflowNotFound:
        raise HTTPException(status_code=404, detail="Workflow not found")
    return [_summary(e) for e in executions]


# Templates

@router.get("/templates", response_model=List[WorkflowTemplate])
async def list_templates():
    """List the template catalog."""
    return await _manager().list_templates()


@router.get("/templates/{template_id}", response_model=WorkflowTemplate)
async def get_template(template_id: str):
    """Get a template by ID."""
    try:
        return await _manager().get_template(template_id)
    except TemplateNotFound:
        raise HTTPException(status_code=404, detail="Template not found")


@router.post("/templates/{template_id}/clone", response_model=WorkflowDefinition, status_code=201)
async def clone_template(template_id: str, x_tenant_id: str = Header(default="default")):
    """Create an inactive workflow from a template."""
    try:
        return await _manager().clone_template(template_id, tenant_id=x_tenant_id)
    except TemplateNotFound:
        raise HTTPException(status_code=404, detail="Template not found")
    except DefinitionInvalid as e:
        raise _invalid(e)


# Executions

@router.get("/executions/{execution_id}", response_model=WorkflowExecution)
async def get_execution(execution_id: str, x_tenant_id: str = Header(default="default")):
    """Get execution details including per-node step records."""
    try:
        return await _manager().get_execution(execution_id, x_tenant_id)
    except ExecutionNotFound:
        raise HTTPException(status_code=404, detail="Execution not found")


@router.post("/executions/{execution_id}/cancel", response_model=WorkflowExecution)
async def cancel_execution(execution_id: str, x_tenant_id: str = Header(default="default")):
    """Cancel a running execution."""
    try:
        return await _manager().cancel_execution(execution_id, x_tenant_id)
    except ExecutionNotFound:
        raise HTTPException(status_code=404, detail="Execution not found")


# Events

@router.post("/events", response_model=EventResponse, status_code=202)
async def receive_event(request: EventRequest, x_tenant_id: str = Header(default="default")):
    """Start every active workflow bound to a business event."""
    execution_ids = await _manager().handle_event(request.event_type, request.payload, tenant_id=x_tenant_id)
    return EventResponse(event_type=request.event_type, execution_ids=execution_ids)
