"""
Persistence layer for workflow definitions, templates and executions.
"""

from .repository import WorkflowRepository, PostgresWorkflowRepository
from .memory import InMemoryWorkflowRepository

__all__ = [
    "WorkflowRepository",
    "PostgresWorkflowRepository",
    "InMemoryWorkflowRepository",
]
