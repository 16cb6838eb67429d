"""
Unit tests for the workflow definition store and template catalog.
"""
import pytest

from conftest import edge, lead_inquiry_workflow, node
from workflow_engine.engine.store import CLONE_TRIGGER_ID, template_to_graph
from workflow_engine.errors import DefinitionInvalid, TemplateNotFound, WorkflowNotFound
from workflow_engine.models.template import WorkflowTemplate, WorkflowTemplateStep
from workflow_engine.models.workflow import TriggerType, WorkflowCreate, WorkflowUpdate
from workflow_engine.templates import BUILTIN_TEMPLATES


def find_template(name: str) -> WorkflowTemplate:
    return next(t for t in BUILTIN_TEMPLATES if t.name == name)


class TestDefinitions:
    """Create, update, activate and delete."""

    @pytest.mark.asyncio
    async def test_create_assigns_id_and_tenant(self, store):
        workflow = await store.create_workflow(lead_inquiry_workflow(), tenant_id="acme")

        assert workflow.id
        assert workflow.tenant_id == "acme"
        assert workflow.is_active is False
        assert workflow.execution_count == 0
        assert [n.id for n in workflow.nodes] == ["trigger-1", "classify", "is-lead", "lead", "notify"]

    @pytest.mark.asyncio
    async def test_create_rejects_invalid_graph(self, store, repository):
        request = WorkflowCreate(name="broken", nodes=[node("a", "delay")], edges=[])

        with pytest.raises(DefinitionInvalid) as exc_info:
            await store.create_workflow(request)

        assert exc_info.value.issues == ["No trigger node found"]
        assert await repository.list_workflows() == []

    @pytest.mark.asyncio
    async def test_tenant_isolation(self, store):
        workflow = await store.create_workflow(lead_inquiry_workflow(), tenant_id="acme")

        with pytest.raises(WorkflowNotFound):
            await store.get_workflow(workflow.id, tenant_id="globex")
        assert await store.list_workflows(tenant_id="globex") == []
        assert len(await store.list_workflows(tenant_id="acme")) == 1

    @pytest.mark.asyncio
    async def test_update_replaces_graph_and_keeps_stats(self, store, repository, recorder):
        workflow = await store.create_workflow(lead_inquiry_workflow())
        execution = await recorder.open(workflow, {})
        await recorder.finalize(execution.id, "succeeded")

        updated = await store.update_workflow(workflow.id, WorkflowUpdate(
            name="Renamed",
            nodes=[node("t", "trigger"), node("n", "send_notification", message="hi")],
            edges=[edge("t", "n")],
        ))

        assert updated.name == "Renamed"
        assert updated.description == workflow.description
        assert [n.id for n in updated.nodes] == ["t", "n"]
        assert [e.id for e in updated.edges] == ["t->n"]
        assert updated.execution_count == 1
        assert updated.created_at == workflow.created_at

    @pytest.mark.asyncio
    async def test_invalid_update_leaves_definition_untouched(self, store):
        workflow = await store.create_workflow(lead_inquiry_workflow())

        with pytest.raises(DefinitionInvalid):
            await store.update_workflow(workflow.id, WorkflowUpdate(nodes=[node("a", "delay")], edges=[]))

        assert len((await store.get_workflow(workflow.id)).nodes) == 5

    @pytest.mark.asyncio
    async def test_activate_and_filter(self, store):
        workflow = await store.create_workflow(lead_inquiry_workflow())

        activated = await store.set_active(workflow.id, True)

        assert activated.is_active
        active = await store.list_workflows(active_only=True, trigger=TriggerType.EMAIL_RECEIVED)
        assert [w.id for w in active] == [workflow.id]
        assert await store.list_workflows(active_only=True, trigger=TriggerType.LEAD_CREATED) == []

        deactivated = await store.set_active(workflow.id, False)
        assert not deactivated.is_active

    @pytest.mark.asyncio
    async def test_activate_revalidates_stored_graph(self, store, repository):
        workflow = await store.create_workflow(lead_inquiry_workflow())
        broken = workflow.model_copy(update={"edges": [edge("trigger-1", "ghost")]})
        await repository.replace_workflow(broken)

        with pytest.raises(DefinitionInvalid):
            await store.set_active(workflow.id, True)
        assert not (await store.get_workflow(workflow.id)).is_active

    @pytest.mark.asyncio
    async def test_delete_cascades_to_executions(self, store, repository, recorder):
        workflow = await store.create_workflow(lead_inquiry_workflow())
        execution = await recorder.open(workflow, {})

        await store.delete_workflow(workflow.id)

        assert await repository.get_execution(execution.id) is None
        with pytest.raises(WorkflowNotFound):
            await store.delete_workflow(workflow.id)


class TestTemplates:
    """Catalog seeding and cloning."""

    @pytest.mark.asyncio
    async def test_seed_is_idempotent_by_name(self, store):
        first = await store.seed_templates(BUILTIN_TEMPLATES)
        second = await store.seed_templates(BUILTIN_TEMPLATES)

        assert first == len(BUILTIN_TEMPLATES)
        assert second == 0
        assert len(await store.list_templates()) == len(BUILTIN_TEMPLATES)

    def test_every_builtin_template_clones_to_a_valid_graph(self):
        from workflow_engine.engine.graph import find_issues

        for template in BUILTIN_TEMPLATES:
            graph = template_to_graph(template)
            assert find_issues(graph.nodes, graph.edges) == [], template.name

    @pytest.mark.asyncio
    async def test_clone_builds_linear_inactive_chain(self, store):
        await store.seed_templates(BUILTIN_TEMPLATES)
        template = next(t for t in await store.list_templates() if t.name == "Smart Lead Scoring")

        workflow = await store.clone_template(template.id, tenant_id="acme")

        steps = template.ordered_steps()
        assert workflow.is_active is False
        assert workflow.tenant_id == "acme"
        assert workflow.trigger == template.trigger_type
        assert workflow.nodes[0].id == CLONE_TRIGGER_ID
        assert len(workflow.nodes) == len(steps) + 1
        for index, step in enumerate(steps, start=1):
            cloned = workflow.nodes[index]
            assert cloned.id == f"step-{index}"
            assert cloned.type == step.step_type
            assert cloned.data == step.step_config
        assert [(e.source, e.target) for e in workflow.edges] == [
            (workflow.nodes[i].id, workflow.nodes[i + 1].id) for i in range(len(steps))
        ]

    def test_edge_after_condition_takes_true_branch(self):
        template = WorkflowTemplate(name="gated", steps=[
            WorkflowTemplateStep(step_order=1, step_type="condition", step_config={"field": "{{trigger.x}}", "value": "1"}),
            WorkflowTemplateStep(step_order=2, step_type="send_notification", step_config={"message": "x is 1"}),
        ])

        graph = template_to_graph(template)

        assert graph.edges[0].branch is None
        assert graph.edges[1].branch is True

    def test_steps_ordered_by_step_order(self):
        template = WorkflowTemplate(name="unordered", steps=[
            WorkflowTemplateStep(step_order=2, step_type="delay", step_config={"delay": 1}),
            WorkflowTemplateStep(step_order=1, step_type="send_notification", step_config={"message": "first"}),
        ])

        graph = template_to_graph(template)

        assert graph.nodes[1].type == "send_notification"
        assert graph.nodes[2].type == "delay"

    def test_trigger_steps_rejected(self):
        with pytest.raises(ValueError):
            WorkflowTemplateStep(step_order=1, step_type="trigger")

    @pytest.mark.asyncio
    async def test_unknown_template(self, store):
        with pytest.raises(TemplateNotFound):
            await store.clone_template("missing")

    def test_lead_nurturing_sequence_catalog_entry(self):
        template = find_template("Lead Nurturing Sequence")
        assert template.trigger_type == TriggerType.LEAD_CREATED
        delays = [s.step_config.get("delay") for s in template.ordered_steps() if s.step_type == "delay"]
        assert delays == [3, 4, 7]
