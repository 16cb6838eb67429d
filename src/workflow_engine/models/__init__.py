"""
Workflow engine data models.
"""

from .nodes import (
    NodeType,
    NodeConfig,
    TriggerConfig,
    AIClassifyConfig,
    AISummarizeConfig,
    AIGenerateReplyConfig,
    CreateLeadConfig,
    CreateActivityConfig,
    SendNotificationConfig,
    ConditionConfig,
    DelayConfig,
    parse_node_config,
    stringify,
)
from .workflow import (
    TriggerType,
    WorkflowNode,
    WorkflowEdge,
    WorkflowDefinition,
    WorkflowCreate,
    WorkflowUpdate,
    WorkflowSummary,
)
from .template import (
    WorkflowTemplate,
    WorkflowTemplateStep,
)
from .execution import (
    ExecutionStatus,
    StepStatus,
    StepRecord,
    WorkflowExecution,
    ExecutionSummary,
    ExecuteRequest,
    EventRequest,
    EventResponse,
)

__all__ = [
    "NodeType",
    "NodeConfig",
    "TriggerConfig",
    "AIClassifyConfig",
    "AISummarizeConfig",
    "AIGenerateReplyConfig",
    "CreateLeadConfig",
    "CreateActivityConfig",
    "SendNotificationConfig",
    "ConditionConfig",
    "DelayConfig",
    "parse_node_config",
    "stringify",
    "TriggerType",
    "WorkflowNode",
    "WorkflowEdge",
    "WorkflowDefinition",
    "WorkflowCreate",
    "WorkflowUpdate",
    "WorkflowSummary",
    "WorkflowTemplate",
    "WorkflowTemplateStep",
    "ExecutionStatus",
    "StepStatus",
    "StepRecord",
    "WorkflowExecution",
    "ExecutionSummary",
    "ExecuteRequest",
    "EventRequest",
    "EventResponse",
]
