"""
Workflow template catalog models.
"""

from typing import Optional, List, Dict, Any
from datetime import datetime
from pydantic import BaseModel, Field, model_validator

from .nodes import NodeType, parse_node_config
from .workflow import TriggerType


class WorkflowTemplateStep(BaseModel):
    """One ordered step of a template; becomes one node when cloned."""
    step_order: int = Field(..., ge=1)
    step_type: NodeType
    step_config: Dict[str, Any] = Field(default_factory=dict)
    description: str = ""

    @model_validator(mode="after")
    def _check_config(self) -> "WorkflowTemplateStep":
        if self.step_type == NodeType.TRIGGER:
            raise ValueError("template steps cannot be trigger nodes")
        parse_node_config(self.step_type, self.step_config)
        return self


class WorkflowTemplate(BaseModel):
    """Immutable catalog entry used to seed new workflow definitions."""
    id: Optional[str] = None
    name: str
    description: Optional[str] = None
    category: str = "general"
    trigger_type: TriggerType = TriggerType.MANUAL
    trigger_config: Dict[str, Any] = Field(default_factory=dict)
    steps: List[WorkflowTemplateStep] = Field(default_factory=list)
    created_at: Optional[datetime] = None

    def ordered_steps(self) -> List[WorkflowTemplateStep]:
        return sorted(self.steps, key=lambda s: s.step_order)
