"""
Structural validation and adjacency for workflow graphs.
"""

from collections import defaultdict
from typing import Dict, List, Optional, Sequence

from ..errors import DefinitionInvalid
from ..models.nodes import NodeType
from ..models.workflow import WorkflowDefinition, WorkflowEdge, WorkflowNode
from .context import TRIGGER_KEY


def find_issues(nodes: Sequence[WorkflowNode], edges: Sequence[WorkflowEdge]) -> List[str]:
    """
    Collect every structural problem in a node/edge graph.

    Checks unique ids, edge endpoints, exactly one trigger node without
    incoming edges, branch tagging around condition nodes and cycles.

    Returns:
        Human-readable issues; empty when the graph is valid
    """
    issues: List[str] = []
    node_types: Dict[str, NodeType] = {}

    for node in nodes:
        if node.id in node_types:
            issues.append(f"Duplicate node id: {node.id}")
        node_types[node.id] = node.type
        if node.id == TRIGGER_KEY and node.type != NodeType.TRIGGER:
            issues.append(f"Node id '{TRIGGER_KEY}' is reserved for the trigger node")

    edge_ids = set()
    incoming: Dict[str, int] = defaultdict(int)
    branches: Dict[str, List[bool]] = defaultdict(list)
    valid_edges: List[WorkflowEdge] = []

    for edge in edges:
        if edge.id in edge_ids:
            issues.append(f"Duplicate edge id: {edge.id}")
        edge_ids.add(edge.id)

        dangling = [end for end in (edge.source, edge.target) if end not in node_types]
        if dangling:
            issues.append(f"Edge {edge.id} references unknown node: {', '.join(dangling)}")
            continue

        valid_edges.append(edge)
        incoming[edge.target] += 1

        if node_types[edge.source] == NodeType.CONDITION:
            if edge.branch is None:
                issues.append(f"Edge {edge.id} leaves condition node {edge.source} without a branch tag")
            else:
                branches[edge.source].append(edge.branch)
        elif edge.branch is not None:
            issues.append(f"Edge {edge.id} has a branch tag but {edge.source} is not a condition node")

    for source, tags in branches.items():
        for tag in (True, False):
            if tags.count(tag) > 1:
                issues.append(f"Condition node {source} has more than one '{str(tag).lower()}' edge")

    triggers = [node_id for node_id, node_type in node_types.items() if node_type == NodeType.TRIGGER]
    if not triggers:
        issues.append("No trigger node found")
    elif len(triggers) > 1:
        issues.append(f"Multiple trigger nodes found: {', '.join(triggers)}")
    for node_id in triggers:
        if incoming.get(node_id):
            issues.append(f"Trigger node {node_id} has incoming edges")

    if _has_cycle(list(node_types), valid_edges):
        issues.append("Cycle detected in workflow graph")

    return issues


def _has_cycle(node_ids: List[str], edges: List[WorkflowEdge]) -> bool:
    """Kahn's algorithm: a cycle leaves nodes that never reach in-degree zero."""
    indegree = {node_id: 0 for node_id in node_ids}
    adjacency: Dict[str, List[str]] = {node_id: [] for node_id in node_ids}
    for edge in edges:
        adjacency[edge.source].append(edge.target)
        indegree[edge.target] += 1

    queue = [node_id for node_id, degree in indegree.items() if degree == 0]
    visited = 0
    while queue:
        current = queue.pop(0)
        visited += 1
        for neighbor in adjacency[current]:
            indegree[neighbor] -= 1
            if indegree[neighbor] == 0:
                queue.append(neighbor)

    return visited != len(node_ids)


def validate_graph(nodes: Sequence[WorkflowNode], edges: Sequence[WorkflowEdge]) -> None:
    """Raise ``DefinitionInvalid`` if the graph has any structural issue."""
    issues = find_issues(nodes, edges)
    if issues:
        raise DefinitionInvalid("Workflow definition is invalid", issues)


class WorkflowGraph:
    """
    Validated, immutable view of a definition's nodes and edges.

    Built once per run from a snapshot of the definition, so edits made while
    a traversal is in flight do not affect it.
    """

    def __init__(self, definition: WorkflowDefinition):
        validate_graph(definition.nodes, definition.edges)
        snapshot = definition.model_copy(deep=True)
        self.definition = snapshot
        self.nodes: Dict[str, WorkflowNode] = {node.id: node for node in snapshot.nodes}
        self._outgoing: Dict[str, List[WorkflowEdge]] = defaultdict(list)
        self._incoming: Dict[str, List[WorkflowEdge]] = defaultdict(list)
        for edge in snapshot.edges:
            self._outgoing[edge.source].append(edge)
            self._incoming[edge.target].append(edge)
        self.trigger_node = next(n for n in snapshot.nodes if n.type == NodeType.TRIGGER)

    def outgoing(self, node_id: str) -> List[WorkflowEdge]:
        return list(self._outgoing.get(node_id, []))

    def incoming(self, node_id: str) -> List[WorkflowEdge]:
        return list(self._incoming.get(node_id, []))

    def successors(self, node_id: str, branch: Optional[bool] = None) -> List[str]:
        """
        Next node ids after ``node_id``.

        For condition nodes only the edge tagged with ``branch`` is followed;
        a missing edge for that branch is a silent dead end.
        """
        node = self.nodes[node_id]
        edges = self._outgoing.get(node_id, [])
        if node.type == NodeType.CONDITION:
            return [edge.target for edge in edges if edge.branch is branch]
        return [edge.target for edge in edges]

    def reachable_from_trigger(self) -> List[str]:
        """Node ids reachable from the trigger, in breadth-first order."""
        seen = [self.trigger_node.id]
        queue = [self.trigger_node.id]
        while queue:
            current = queue.pop(0)
            for edge in self._outgoing.get(current, []):
                if edge.target not in seen:
                    seen.append(edge.target)
                    queue.append(edge.target)
        return seen
