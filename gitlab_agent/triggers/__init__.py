"""Trigger system - event parsing, classification and pipeline handoff."""

from gitlab_agent.triggers.bots import is_bot_user
from gitlab_agent.triggers.dispatcher import TriggerDispatcher
from gitlab_agent.triggers.events import GitLabEvent, parse_event
from gitlab_agent.triggers.models import ResourceType, TriggerResult, TriggerType
from gitlab_agent.triggers.validator import TriggerValidator
from gitlab_agent.triggers.webhooks import WebhookHandler, sanitize_event

__all__ = [
    "is_bot_user",
    "TriggerDispatcher",
    "GitLabEvent",
    "parse_event",
    "ResourceType",
    "TriggerResult",
    "TriggerType",
    "TriggerValidator",
    "WebhookHandler",
    "sanitize_event",
]
