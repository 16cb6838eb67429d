"""
Built-in workflow template catalog.

Each entry is an ordered list of steps; cloning turns step ``n`` into node
``step-n`` and chains the steps in order behind a trigger node.

Flow of the lead templates:
    trigger → ai_classify → condition ──(true)→ create_lead → send_notification
"""

from typing import List

from ..models.nodes import NodeType
from ..models.template import WorkflowTemplate, WorkflowTemplateStep
from ..models.workflow import TriggerType


def _steps(*steps) -> List[WorkflowTemplateStep]:
    return [
        WorkflowTemplateStep(step_order=order, step_type=step_type, step_config=config, description=description)
        for order, (step_type, config, description) in enumerate(steps, start=1)
    ]


LEAD_NURTURING_AUTO_FOLLOW_UP = WorkflowTemplate(
    name="Lead Nurturing - Auto Follow-up",
    description="Automatically classify incoming emails and create leads for qualified prospects",
    category="nurturing",
    trigger_type=TriggerType.EMAIL_RECEIVED,
    trigger_config={"source": "gmail"},
    steps=_steps(
        (NodeType.AI_CLASSIFY, {
            "label": "AI Email Classification",
            "emailSubject": "{{trigger.subject}}",
            "emailFrom": "{{trigger.from}}",
            "emailPreview": "{{trigger.preview}}",
        }, "Classify the incoming email"),
        (NodeType.CONDITION, {
            "label": "Is Lead Inquiry?",
            "field": "{{step-1.classification}}",
            "operator": "equals",
            "value": "Lead Inquiry",
        }, "Continue only for lead inquiries"),
        (NodeType.CREATE_LEAD, {
            "label": "Create New Lead",
            "title": "{{trigger.subject}}",
            "description": "Auto-created from email: {{trigger.preview}}",
            "status": "prospect",
            "contactId": "{{trigger.contactId}}",
        }, "Create a prospect lead"),
        (NodeType.SEND_NOTIFICATION, {
            "label": "Notify Team",
            "message": "New lead created: {{trigger.subject}}",
            "channel": "internal",
        }, "Tell the team about the new lead"),
    ),
)

COLD_OUTREACH_AUTO_RESPONSE = WorkflowTemplate(
    name="Cold Outreach - Auto Response",
    description="Generate personalized AI responses for prospect inquiries",
    category="outreach",
    trigger_type=TriggerType.EMAIL_RECEIVED,
    trigger_config={"source": "gmail", "filter": "label:prospects"},
    steps=_steps(
        (NodeType.AI_SUMMARIZE, {
            "label": "Summarize Email",
            "emailSubject": "{{trigger.subject}}",
            "emailFrom": "{{trigger.from}}",
            "emailBody": "{{trigger.body}}",
        }, "Summarize the prospect's email"),
        (NodeType.AI_GENERATE_REPLY, {
            "label": "Generate Reply",
            "emailContent": "{{trigger.body}}",
            "tone": "professional",
            "context": "Sales outreach for B2B SaaS platform",
        }, "Draft a reply"),
        (NodeType.CREATE_ACTIVITY, {
            "label": "Log Activity",
            "type": "email",
            "title": "AI-assisted reply sent",
            "description": "{{step-2.reply}}",
            "contactId": "{{trigger.contactId}}",
        }, "Log the drafted reply"),
    ),
)

DEAL_PROGRESS_TRACKER = WorkflowTemplate(
    name="Deal Progress Tracker",
    description="Monitor negotiations and notify team of key milestones",
    category="sales",
    trigger_type=TriggerType.EMAIL_RECEIVED,
    trigger_config={"source": "gmail", "filter": "label:negotiations"},
    steps=_steps(
        (NodeType.AI_CLASSIFY, {
            "label": "Classify Stage",
            "emailSubject": "{{trigger.subject}}",
            "emailFrom": "{{trigger.from}}",
            "emailPreview": "{{trigger.preview}}",
        }, "Classify the negotiation email"),
        (NodeType.CONDITION, {
            "label": "Is Positive Signal?",
            "field": "{{step-1.classification}}",
            "operator": "equals",
            "value": "Negotiation",
        }, "Continue only for negotiation emails"),
        (NodeType.CREATE_ACTIVITY, {
            "label": "Log Negotiation Update",
            "type": "note",
            "title": "Deal progress update",
            "description": "Classification: {{step-1.classification}}, Confidence: {{step-1.confidence}}%",
            "leadId": "{{trigger.leadId}}",
        }, "Record the update on the lead"),
        (NodeType.SEND_NOTIFICATION, {
            "label": "Alert Sales Team",
            "message": "Deal update: {{trigger.subject}} - {{step-1.nextAction}}",
            "channel": "webhook",
        }, "Alert the sales channel"),
    ),
)

ABANDONED_LEAD_RECOVERY = WorkflowTemplate(
    name="Abandoned Lead Recovery",
    description="Re-engage leads that haven't responded in 7 days",
    category="recovery",
    trigger_type=TriggerType.SCHEDULED,
    trigger_config={"schedule": "daily", "time": "09:00"},
    steps=_steps(
        (NodeType.CONDITION, {
            "label": "No Response > 7 Days?",
            "field": "{{trigger.daysSinceContact}}",
            "operator": "greater_than",
            "value": "7",
        }, "Only leads silent for more than a week"),
        (NodeType.AI_GENERATE_REPLY, {
            "label": "Generate Follow-up",
            "emailContent": "{{trigger.lastEmailContent}}",
            "tone": "friendly",
            "context": "Following up on previous conversation about our services",
        }, "Draft a friendly follow-up"),
        (NodeType.CREATE_ACTIVITY, {
            "label": "Log Follow-up",
            "type": "email",
            "title": "Automated follow-up sent",
            "description": "Re-engagement attempt for abandoned lead",
            "leadId": "{{trigger.leadId}}",
        }, "Log the follow-up"),
    ),
)

SMART_LEAD_SCORING = WorkflowTemplate(
    name="Smart Lead Scoring",
    description="Automatically score and prioritize leads based on email engagement",
    category="scoring",
    trigger_type=TriggerType.EMAIL_RECEIVED,
    trigger_config={"source": "gmail"},
    steps=_steps(
        (NodeType.AI_CLASSIFY, {
            "label": "Analyze Intent",
            "emailSubject": "{{trigger.subject}}",
            "emailFrom": "{{trigger.from}}",
            "emailPreview": "{{trigger.preview}}",
        }, "Score the sender's intent"),
        (NodeType.CONDITION, {
            "label": "High Confidence?",
            "field": "{{step-1.confidence}}",
            "operator": "greater_than",
            "value": "80",
        }, "Continue only above 80% confidence"),
        (NodeType.CREATE_ACTIVITY, {
            "label": "Mark as High Priority",
            "type": "note",
            "title": "High-value lead detected",
            "description": "AI confidence: {{step-1.confidence}}% - {{step-1.nextAction}}",
            "leadId": "{{trigger.leadId}}",
        }, "Flag the lead"),
        (NodeType.SEND_NOTIFICATION, {
            "label": "Alert Team Lead",
            "message": "High-priority lead: {{trigger.subject}}",
            "channel": "internal",
        }, "Alert the team lead"),
    ),
)

LEAD_NURTURING_SEQUENCE = WorkflowTemplate(
    name="Lead Nurturing Sequence",
    description="Automated follow-up sequence for new leads with educational content and value-driven touchpoints",
    category="nurturing",
    trigger_type=TriggerType.LEAD_CREATED,
    steps=_steps(
        (NodeType.SEND_NOTIFICATION, {
            "label": "Initial Welcome Email",
            "channel": "email",
            "recipient": "{{trigger.email}}",
            "message": "Hi {{trigger.firstName}},\n\nThank you for your interest! "
                       "I wanted to personally reach out and see how we can help you achieve your goals.",
        }, "Welcome email"),
        (NodeType.DELAY, {"label": "Wait 3 days", "delay": 3}, "Wait before sharing a resource"),
        (NodeType.SEND_NOTIFICATION, {
            "label": "Share Resource",
            "channel": "email",
            "recipient": "{{trigger.email}}",
            "message": "Hi {{trigger.firstName}},\n\nI came across this resource that might be valuable "
                       "for your {{trigger.industry}} business.",
        }, "Share a resource"),
        (NodeType.DELAY, {"label": "Wait 4 days", "delay": 4}, "Wait until day 7"),
        (NodeType.CREATE_ACTIVITY, {
            "label": "Check-in Call",
            "type": "call",
            "title": "Check-in call",
            "description": "Quick check-in to see if you have any questions",
            "leadId": "{{trigger.leadId}}",
        }, "Schedule a check-in call"),
        (NodeType.DELAY, {"label": "Wait 7 days", "delay": 7}, "Wait until day 14"),
        (NodeType.SEND_NOTIFICATION, {
            "label": "Case Study Follow-up",
            "channel": "email",
            "recipient": "{{trigger.email}}",
            "message": "Hi {{trigger.firstName}},\n\nI wanted to share how we helped a similar company "
                       "in {{trigger.industry}} achieve amazing results.",
        }, "Send a case study"),
    ),
)


BUILTIN_TEMPLATES: List[WorkflowTemplate] = [
    LEAD_NURTURING_AUTO_FOLLOW_UP,
    COLD_OUTREACH_AUTO_RESPONSE,
    DEAL_PROGRESS_TRACKER,
    ABANDONED_LEAD_RECOVERY,
    SMART_LEAD_SCORING,
    LEAD_NURTURING_SEQUENCE,
]
