"""
Workflow definition models.
"""

from typing import Optional, List, Dict, Any
from enum import Enum
from datetime import datetime
from pydantic import BaseModel, Field, model_validator

from .nodes import NodeConfig, NodeType, parse_node_config


class TriggerType(str, Enum):
    """Events that can start a workflow."""
    EMAIL_RECEIVED = "email_received"
    LEAD_CREATED = "lead_created"
    SCHEDULED = "scheduled"
    MANUAL = "manual"


class WorkflowNode(BaseModel):
    """A typed step in the workflow graph."""
    id: str = Field(..., min_length=1, description="Unique node identifier")
    type: NodeType = Field(..., description="Node type")
    data: Dict[str, Any] = Field(default_factory=dict, description="Node configuration")
    position: Optional[Dict[str, Any]] = Field(default=None, description="Editor position, ignored by the engine")

    @model_validator(mode="after")
    def _check_config(self) -> "WorkflowNode":
        parse_node_config(self.type, self.data)
        return self

    @property
    def config(self) -> NodeConfig:
        """Typed configuration for this node's type."""
        return parse_node_config(self.type, self.data)


class WorkflowEdge(BaseModel):
    """A directed link between two nodes."""
    id: str = Field(..., min_length=1)
    source: str = Field(..., description="Source node id")
    target: str = Field(..., description="Target node id")
    branch: Optional[bool] = Field(
        default=None,
        description="Branch taken from a condition node (true/false)",
    )


class WorkflowDefinition(BaseModel):
    """Complete workflow definition."""
    id: Optional[str] = None
    tenant_id: str = Field(default="default", description="Owning tenant")
    name: str = Field(..., description="Workflow name")
    description: Optional[str] = None
    trigger: TriggerType = Field(default=TriggerType.MANUAL)
    trigger_config: Dict[str, Any] = Field(default_factory=dict)
    nodes: List[WorkflowNode] = Field(default_factory=list)
    edges: List[WorkflowEdge] = Field(default_factory=list)
    is_active: bool = Field(default=False)
    is_template: bool = Field(default=False)
    execution_count: int = 0
    last_executed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def get_node(self, node_id: str) -> Optional[WorkflowNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None


class WorkflowCreate(BaseModel):
    """Payload for creating a workflow definition."""
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    trigger: TriggerType = Field(default=TriggerType.MANUAL)
    trigger_config: Dict[str, Any] = Field(default_factory=dict)
    nodes: List[WorkflowNode] = Field(default_factory=list)
    edges: List[WorkflowEdge] = Field(default_factory=list)
    is_active: bool = False
    is_template: bool = False


class WorkflowUpdate(BaseModel):
    """Full-graph replacement plus optional metadata changes."""
    nodes: List[WorkflowNode]
    edges: List[WorkflowEdge]
    name: Optional[str] = None
    description: Optional[str] = None
    trigger: Optional[TriggerType] = None
    trigger_config: Optional[Dict[str, Any]] = None
    is_active: Optional[bool] = None


class WorkflowSummary(BaseModel):
    """Summary of a definition for list views."""
    id: str
    name: str
    description: Optional[str]
    trigger: TriggerType
    is_active: bool
    is_template: bool
    execution_count: int
    last_executed_at: Optional[datetime]
