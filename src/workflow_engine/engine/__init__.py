"""
Workflow interpreter: template resolution, conditions, dispatch and traversal.
"""

from .actions import ActionDispatcher, ActionServices, NodeResult, Suspension
from .context import ExecutionContext
from .graph import WorkflowGraph, find_issues, validate_graph
from .pool import WorkerPool
from .recorder import ExecutionRecorder
from .scheduler import Scheduler
from .store import WorkflowStore, template_to_graph
from .triggers import TriggerBinder
from .walker import GraphWalker

__all__ = [
    "ActionDispatcher",
    "ActionServices",
    "NodeResult",
    "Suspension",
    "ExecutionContext",
    "WorkflowGraph",
    "find_issues",
    "validate_graph",
    "WorkerPool",
    "ExecutionRecorder",
    "Scheduler",
    "WorkflowStore",
    "template_to_graph",
    "TriggerBinder",
    "GraphWalker",
]
