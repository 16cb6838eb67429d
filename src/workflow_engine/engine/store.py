"""
Workflow definition store: CRUD, activation and template cloning.
"""

import logging
from typing import Iterable, List, Optional

from ..errors import DefinitionInvalid, TemplateNotFound, WorkflowNotFound
from ..models.nodes import NodeType
from ..models.template import WorkflowTemplate
from ..models.workflow import (
    TriggerType,
    WorkflowCreate,
    WorkflowDefinition,
    WorkflowEdge,
    WorkflowNode,
    WorkflowUpdate,
)
from ..persistence.repository import WorkflowRepository
from .graph import validate_graph

logger = logging.getLogger(__name__)

CLONE_TRIGGER_ID = "trigger-1"


def template_to_graph(template: WorkflowTemplate) -> WorkflowCreate:
    """
    Translate a template's ordered steps 1:1 into nodes and a linear edge chain.

    Step ``n`` becomes node ``step-n``; edge ``e<n>`` leads into it. An edge
    leaving a condition step takes its true branch.
    """
    nodes = [WorkflowNode(id=CLONE_TRIGGER_ID, type=NodeType.TRIGGER, data={"label": template.name})]
    edges: List[WorkflowEdge] = []

    previous = nodes[0]
    for index, step in enumerate(template.ordered_steps(), start=1):
        node = WorkflowNode(
            id=f"step-{index}",
            type=step.step_type,
            data=dict(step.step_config),
            position={"x": 100, "y": 100 * (index + 1)},
        )
        edges.append(WorkflowEdge(
            id=f"e{index}",
            source=previous.id,
            target=node.id,
            branch=True if previous.type == NodeType.CONDITION else None,
        ))
        nodes.append(node)
        previous = node

    return WorkflowCreate(
        name=template.name,
        description=template.description,
        trigger=template.trigger_type,
        trigger_config=dict(template.trigger_config),
        nodes=nodes,
        edges=edges,
        is_active=False,
    )


class WorkflowStore:
    """
    Owns workflow definitions and the template catalog.

    Graphs are validated before every write; updates replace nodes and edges
    as a whole.
    """

    def __init__(self, repository: WorkflowRepository):
        self.repository = repository

    async def create_workflow(self, request: WorkflowCreate, tenant_id: str = "default") -> WorkflowDefinition:
        """
        Create a new workflow definition.

        Raises:
            DefinitionInvalid: If the graph fails structural validation
        """
        validate_graph(request.nodes, request.edges)
        workflow = WorkflowDefinition(tenant_id=tenant_id, **request.model_dump())
        created = await self.repository.create_workflow(workflow)
        logger.info(f"Created workflow {created.id} ({created.name}) for tenant {tenant_id}")
        return created

    async def update_workflow(
        self,
        workflow_id: str,
        update: WorkflowUpdate,
        tenant_id: Optional[str] = None,
    ) -> WorkflowDefinition:
        """
        Replace a workflow's graph and apply any metadata changes.

        Raises:
            WorkflowNotFound: Unknown id (or owned by another tenant)
            DefinitionInvalid: If the new graph fails structural validation
        """
        current = await self.get_workflow(workflow_id, tenant_id)
        validate_graph(update.nodes, update.edges)

        changes = update.model_dump(exclude_unset=True, exclude={"nodes", "edges"})
        changes = {key: value for key, value in changes.items() if value is not None}
        replacement = current.model_copy(update={**changes, "nodes": update.nodes, "edges": update.edges})

        updated = await self.repository.replace_workflow(replacement)
        logger.info(f"Replaced graph of workflow {workflow_id}: {len(update.nodes)} nodes, {len(update.edges)} edges")
        return updated

    async def get_workflow(self, workflow_id: str, tenant_id: Optional[str] = None) -> WorkflowDefinition:
        workflow = await self.repository.get_workflow(workflow_id, tenant_id)
        if workflow is None:
            raise WorkflowNotFound(f"Workflow not found: {workflow_id}")
        return workflow

    async def list_workflows(
        self,
        tenant_id: Optional[str] = None,
        active_only: bool = False,
        trigger: Optional[TriggerType] = None,
        templates: Optional[bool] = None,
    ) -> List[WorkflowDefinition]:
        workflows = await self.repository.list_workflows(tenant_id, active_only=active_only, trigger=trigger)
        if templates is not None:
            workflows = [w for w in workflows if w.is_template == templates]
        return workflows

    async def delete_workflow(self, workflow_id: str, tenant_id: Optional[str] = None) -> None:
        """Delete a workflow and, by cascade, its executions."""
        await self.get_workflow(workflow_id, tenant_id)
        await self.repository.delete_workflow(workflow_id)
        logger.info(f"Deleted workflow {workflow_id}")

    async def set_active(self, workflow_id: str, active: bool, tenant_id: Optional[str] = None) -> WorkflowDefinition:
        """
        Activate or deactivate a workflow.

        Activation re-validates the stored graph so an invalid definition can
        never be picked up by the trigger binder.
        """
        workflow = await self.get_workflow(workflow_id, tenant_id)
        if active:
            validate_graph(workflow.nodes, workflow.edges)
        if workflow.is_active == active:
            return workflow

        workflow.is_active = active
        updated = await self.repository.replace_workflow(workflow)
        logger.info(f"Workflow {workflow_id} {'activated' if active else 'deactivated'}")
        return updated

    # Templates

    async def list_templates(self) -> List[WorkflowTemplate]:
        return await self.repository.list_templates()

    async def get_template(self, template_id: str) -> WorkflowTemplate:
        template = await self.repository.get_template(template_id)
        if template is None:
            raise TemplateNotFound(f"Template not found: {template_id}")
        return template

    async def clone_template(self, template_id: str, tenant_id: str = "default") -> WorkflowDefinition:
        """Create an inactive definition from a catalog template."""
        template = await self.get_template(template_id)
        created = await self.create_workflow(template_to_graph(template), tenant_id=tenant_id)
        logger.info(f"Cloned template '{template.name}' into workflow {created.id}")
        return created

    async def seed_templates(self, templates: Iterable[WorkflowTemplate]) -> int:
        """
        Insert catalog templates that are not stored yet, matched by name.

        Returns:
            Number of templates inserted
        """
        existing = {t.name for t in await self.repository.list_templates()}
        inserted = 0
        for template in templates:
            if template.name in existing:
                logger.debug(f"Template '{template.name}' already exists, skipping")
                continue
            # A template must clone into a valid graph.
            graph = template_to_graph(template)
            try:
                validate_graph(graph.nodes, graph.edges)
            except DefinitionInvalid as e:
                logger.error(f"Skipping invalid template '{template.name}': {e}")
                continue
            await self.repository.create_template(template)
            existing.add(template.name)
            inserted += 1
            logger.info(f"Seeded template '{template.name}' ({len(template.steps)} steps)")
        return inserted
