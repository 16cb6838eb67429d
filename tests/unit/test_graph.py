"""
Unit tests for graph validation and adjacency.
"""
import pytest

from conftest import edge, lead_inquiry_workflow, node
from workflow_engine.engine.graph import WorkflowGraph, find_issues, validate_graph
from workflow_engine.errors import DefinitionInvalid
from workflow_engine.models.workflow import WorkflowDefinition, WorkflowNode


def definition(nodes, edges) -> WorkflowDefinition:
    return WorkflowDefinition(id="wf-1", name="test", nodes=nodes, edges=edges)


class TestValidation:
    """Structural validation of node/edge graphs."""

    def test_valid_lead_workflow(self):
        workflow = lead_inquiry_workflow()
        assert find_issues(workflow.nodes, workflow.edges) == []

    def test_two_trigger_nodes(self):
        nodes = [node("t1", "trigger"), node("t2", "trigger"), node("n", "send_notification", message="x")]
        issues = find_issues(nodes, [edge("t1", "n"), edge("t2", "n")])
        assert any("Multiple trigger nodes" in issue for issue in issues)

    def test_no_trigger_node(self):
        issues = find_issues([node("n", "send_notification", message="x")], [])
        assert "No trigger node found" in issues

    def test_trigger_with_incoming_edge(self):
        nodes = [node("t", "trigger"), node("n", "send_notification", message="x")]
        issues = find_issues(nodes, [edge("t", "n"), edge("n", "t")])
        assert any("has incoming edges" in issue for issue in issues)

    def test_dangling_edge(self):
        issues = find_issues([node("t", "trigger")], [edge("t", "ghost")])
        assert any("unknown node: ghost" in issue for issue in issues)

    def test_cycle(self):
        nodes = [
            node("t", "trigger"),
            node("a", "delay", duration=10),
            node("b", "delay", duration=10),
        ]
        issues = find_issues(nodes, [edge("t", "a"), edge("a", "b"), edge("b", "a")])
        assert "Cycle detected in workflow graph" in issues

    def test_duplicate_ids(self):
        nodes = [node("t", "trigger"), node("a", "delay"), node("a", "delay")]
        issues = find_issues(nodes, [edge("t", "a", edge_id="e1"), edge("t", "a", edge_id="e1")])
        assert "Duplicate node id: a" in issues
        assert "Duplicate edge id: e1" in issues

    def test_reserved_trigger_id(self):
        nodes = [node("t", "trigger"), node("trigger", "delay")]
        issues = find_issues(nodes, [edge("t", "trigger")])
        assert any("reserved" in issue for issue in issues)

    def test_condition_edges_need_branch_tags(self):
        nodes = [node("t", "trigger"), node("c", "condition", field="x"), node("a", "delay")]
        issues = find_issues(nodes, [edge("t", "c"), edge("c", "a")])
        assert any("without a branch tag" in issue for issue in issues)

    def test_one_edge_per_branch_value(self):
        nodes = [node("t", "trigger"), node("c", "condition", field="x"), node("a", "delay"), node("b", "delay")]
        issues = find_issues(nodes, [edge("t", "c"), edge("c", "a", branch=True), edge("c", "b", branch=True)])
        assert any("more than one 'true' edge" in issue for issue in issues)

    def test_branch_tag_on_plain_node(self):
        nodes = [node("t", "trigger"), node("a", "delay")]
        issues = find_issues(nodes, [edge("t", "a", branch=False)])
        assert any("is not a condition node" in issue for issue in issues)

    def test_validate_graph_raises_with_issues(self):
        with pytest.raises(DefinitionInvalid) as exc_info:
            validate_graph([node("a", "delay")], [])
        assert exc_info.value.issues == ["No trigger node found"]
        assert "No trigger node found" in str(exc_info.value)

    def test_invalid_node_config_rejected_on_construction(self):
        with pytest.raises(ValueError):
            WorkflowNode(id="n", type="send_notification", data={})
        with pytest.raises(ValueError):
            WorkflowNode(id="c", type="condition", data={"field": "x", "operator": "matches"})


class TestWorkflowGraph:
    """Adjacency of a validated graph."""

    def test_condition_follows_matching_branch_only(self):
        nodes = [
            node("t", "trigger"),
            node("c", "condition", field="x"),
            node("yes", "delay"),
            node("no", "delay"),
        ]
        graph = WorkflowGraph(definition(nodes, [edge("t", "c"), edge("c", "yes", True), edge("c", "no", False)]))
        assert graph.successors("c", True) == ["yes"]
        assert graph.successors("c", False) == ["no"]

    def test_missing_branch_is_dead_end(self):
        nodes = [node("t", "trigger"), node("c", "condition", field="x"), node("yes", "delay")]
        graph = WorkflowGraph(definition(nodes, [edge("t", "c"), edge("c", "yes", True)]))
        assert graph.successors("c", False) == []

    def test_fan_out_and_reachability(self):
        nodes = [node("t", "trigger"), node("a", "delay"), node("b", "delay"), node("orphan", "delay")]
        graph = WorkflowGraph(definition(nodes, [edge("t", "a"), edge("t", "b")]))
        assert graph.trigger_node.id == "t"
        assert graph.successors("t") == ["a", "b"]
        assert graph.reachable_from_trigger() == ["t", "a", "b"]
        assert [e.source for e in graph.incoming("a")] == ["t"]

    def test_snapshot_is_isolated_from_later_edits(self):
        wf = definition([node("t", "trigger"), node("a", "delay")], [edge("t", "a")])
        graph = WorkflowGraph(wf)
        wf.nodes[1].data["delay"] = 5
        wf.edges.clear()
        assert graph.successors("t") == ["a"]
        assert "delay" not in graph.nodes["a"].data

    def test_invalid_definition_rejected(self):
        with pytest.raises(DefinitionInvalid):
            WorkflowGraph(definition([node("a", "delay")], []))
