"""
Workflow execution tracking models.
"""

from typing import Optional, List, Dict, Any
from enum import Enum
from datetime import datetime
from pydantic import BaseModel, Field


class ExecutionStatus(str, Enum):
    """Workflow execution status."""
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class StepStatus(str, Enum):
    """Outcome of a single node dispatch."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SUSPENDED = "suspended"


class StepRecord(BaseModel):
    """Recorded output (or error) of one node in an execution."""
    node_type: Optional[str] = None
    status: StepStatus = StepStatus.SUCCEEDED
    output: Any = None
    error: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class WorkflowExecution(BaseModel):
    """Complete workflow execution record."""
    id: Optional[str] = None
    workflow_id: str
    tenant_id: str = "default"
    trigger: Optional[str] = None
    status: ExecutionStatus = ExecutionStatus.RUNNING
    input: Dict[str, Any] = Field(default_factory=dict)
    execution_data: Dict[str, StepRecord] = Field(default_factory=dict)
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    waiting_until: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status != ExecutionStatus.RUNNING


class ExecutionSummary(BaseModel):
    """Summary of an execution for list views."""
    id: str
    workflow_id: str
    status: ExecutionStatus
    error: Optional[str]
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    steps: int = 0


class ExecuteRequest(BaseModel):
    """Manual or test run of a workflow."""
    payload: Dict[str, Any] = Field(default_factory=dict, description="Sample trigger payload")


class EventRequest(BaseModel):
    """An external business event delivered to the trigger binder."""
    event_type: str = Field(..., description="email_received, lead_created, manual")
    payload: Dict[str, Any] = Field(default_factory=dict)


class EventResponse(BaseModel):
    """Executions opened for an event."""
    event_type: str
    execution_ids: List[str] = Field(default_factory=list)
