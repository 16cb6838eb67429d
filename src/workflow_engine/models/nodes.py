"""
Typed node configuration models.

Every node type carries its own configuration model. The raw ``data`` map of a
node is validated against the model for its type when the node is built, so a
definition with a malformed node never reaches storage.
"""

import json
from enum import Enum
from typing import Any, Dict, Literal, Optional, Type, Union

from pydantic import BaseModel, Field, ValidationError, field_validator


class NodeType(str, Enum):
    """Node types understood by the action dispatch table."""
    TRIGGER = "trigger"
    AI_CLASSIFY = "ai_classify"
    AI_SUMMARIZE = "ai_summarize"
    AI_GENERATE_REPLY = "ai_generate_reply"
    CREATE_LEAD = "create_lead"
    CREATE_ACTIVITY = "create_activity"
    SEND_NOTIFICATION = "send_notification"
    CONDITION = "condition"
    DELAY = "delay"


def stringify(value: Any) -> str:
    """
    Canonical string form of a context value.

    Numbers render as decimals, booleans as ``true``/``false`` and ``None`` as
    the empty string. Containers render as JSON.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str)
    return str(value)


class NodeConfig(BaseModel):
    """Keys shared by every node type."""
    label: Optional[str] = None
    required: Optional[bool] = Field(
        default=None,
        description="Whether a dispatch error aborts the branch",
    )
    timeout_seconds: Optional[float] = Field(default=None, alias="timeoutSeconds", gt=0)

    class Config:
        populate_by_name = True


class TriggerConfig(NodeConfig):
    pass


class AIClassifyConfig(NodeConfig):
    email_subject: str = Field(default="", alias="emailSubject")
    email_from: str = Field(default="", alias="emailFrom")
    email_preview: str = Field(default="", alias="emailPreview")
    text: Optional[str] = None


class AISummarizeConfig(NodeConfig):
    email_subject: str = Field(default="", alias="emailSubject")
    email_from: str = Field(default="", alias="emailFrom")
    email_body: str = Field(default="", alias="emailBody")
    text: Optional[str] = None


class AIGenerateReplyConfig(NodeConfig):
    email_content: str = Field(default="", alias="emailContent")
    tone: Literal["professional", "friendly", "persuasive"] = "professional"
    context: str = ""


class CreateLeadConfig(NodeConfig):
    title: str = ""
    description: Optional[str] = None
    value: Optional[Union[str, int, float]] = None
    status: str = "prospect"
    contact_id: Optional[str] = Field(default=None, alias="contactId")
    company_id: Optional[str] = Field(default=None, alias="companyId")


class CreateActivityConfig(NodeConfig):
    activity_type: str = Field(default="note", alias="type")
    title: str = ""
    description: str = ""
    contact_id: Optional[str] = Field(default=None, alias="contactId")
    lead_id: Optional[str] = Field(default=None, alias="leadId")


class SendNotificationConfig(NodeConfig):
    message: str
    channel: str = "internal"
    recipient: Optional[str] = None


ConditionOperator = Literal["equals", "not_equals", "greater_than", "less_than", "contains"]


class ConditionConfig(NodeConfig):
    field: str
    operator: ConditionOperator = "equals"
    value: str = ""

    @field_validator("value", mode="before")
    @classmethod
    def _stringify_value(cls, value: Any) -> str:
        return stringify(value)


class DelayConfig(NodeConfig):
    delay: Optional[float] = Field(default=None, ge=0, description="Delay in days")
    duration: Optional[float] = Field(default=None, ge=0, description="Delay in milliseconds")

    def seconds(self) -> float:
        """Delay length in seconds; the larger of the two fields wins."""
        if self.delay is None and self.duration is None:
            return 1.0
        days = (self.delay or 0) * 86400
        millis = (self.duration or 0) / 1000
        return max(days, millis)


NODE_CONFIG_TYPES: Dict[NodeType, Type[NodeConfig]] = {
    NodeType.TRIGGER: TriggerConfig,
    NodeType.AI_CLASSIFY: AIClassifyConfig,
    NodeType.AI_SUMMARIZE: AISummarizeConfig,
    NodeType.AI_GENERATE_REPLY: AIGenerateReplyConfig,
    NodeType.CREATE_LEAD: CreateLeadConfig,
    NodeType.CREATE_ACTIVITY: CreateActivityConfig,
    NodeType.SEND_NOTIFICATION: SendNotificationConfig,
    NodeType.CONDITION: ConditionConfig,
    NodeType.DELAY: DelayConfig,
}


def parse_node_config(node_type: NodeType, data: Dict[str, Any]) -> NodeConfig:
    """
    Validate a node's raw data map against its type's configuration model.

    Args:
        node_type: Node type
        data: Raw configuration map

    Returns:
        Typed configuration

    Raises:
        ValueError: If the data does not fit the model
    """
    config_cls = NODE_CONFIG_TYPES[NodeType(node_type)]
    try:
        return config_cls.model_validate(data or {})
    except ValidationError as e:
        problems = ", ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'data'}: {err['msg']}"
            for err in e.errors()
        )
        raise ValueError(f"invalid {NodeType(node_type).value} configuration ({problems})")
