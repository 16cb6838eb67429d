"""
Workflow engine error types.
"""

from typing import List, Optional


class WorkflowEngineError(Exception):
    """Base exception for workflow engine errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class DefinitionInvalid(WorkflowEngineError):
    """Raised when a workflow graph fails structural validation."""

    def __init__(self, message: str, issues: Optional[List[str]] = None):
        super().__init__(message)
        self.issues = issues or []

    def __str__(self) -> str:
        if not self.issues:
            return self.message
        return f"{self.message}: {'; '.join(self.issues)}"


class TemplateUnresolved(WorkflowEngineError):
    """A placeholder could not be resolved against the execution context."""

    def __init__(self, path: str):
        super().__init__(f"Unresolved placeholder: {{{{{path}}}}}")
        self.path = path


class ConditionEvaluationError(WorkflowEngineError):
    """A condition could not be evaluated (unknown operator, non-numeric operand)."""
    pass


class ActionDispatchError(WorkflowEngineError):
    """Raised when a node handler's collaborator fails or times out."""

    def __init__(
        self,
        message: str,
        node_id: Optional[str] = None,
        node_type: Optional[str] = None,
    ):
        super().__init__(message)
        self.node_id = node_id
        self.node_type = node_type

    def describe(self) -> str:
        """Error text naming the failing node."""
        if self.node_id:
            return f"Node '{self.node_id}' ({self.node_type}) failed: {self.message}"
        return self.message


class AIServiceError(ActionDispatchError):
    """Raised when the AI provider returns an error."""
    pass


class AIRateLimitError(AIServiceError):
    """Raised when the AI provider rate limits the request."""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class CrmStoreError(ActionDispatchError):
    """Raised when the CRM record store rejects a write."""
    pass


class NotificationError(ActionDispatchError):
    """Raised when a notification channel fails to deliver."""
    pass


class ExecutionFinalizeRace(WorkflowEngineError):
    """The execution record and definition statistics could not be updated together."""

    def __init__(self, execution_id: str, cause: Optional[Exception] = None):
        super().__init__(f"Could not finalize execution {execution_id}: {cause}")
        self.execution_id = execution_id
        self.cause = cause


class WorkflowNotFound(WorkflowEngineError):
    """Raised when a workflow definition does not exist."""
    pass


class TemplateNotFound(WorkflowEngineError):
    """Raised when a workflow template does not exist."""
    pass


class ExecutionNotFound(WorkflowEngineError):
    """Raised when an execution record does not exist."""
    pass


STALE_EXECUTION = "StaleExecution"
EXECUTION_CANCELLED = "ExecutionCancelled"
