"""
Webhook handler.

Runs the part of the webhook path that happens after classification:
it hands the trigger off to the CI pipeline that performs the actual work.
"""

import logging
from typing import Any, Optional

import httpx

from gitlab_agent.config import ActionConfig, GitLabSettings
from gitlab_agent.triggers.events import (
    GitLabEvent,
    IssueEvent,
    MergeRequestEvent,
    NoteEvent,
)
from gitlab_agent.triggers.models import TriggerResult
from gitlab_agent.triggers.pipeline import trigger_pipeline

logger = logging.getLogger(__name__)


def sanitize_event(event: GitLabEvent) -> dict[str, Any]:
    """Keep only the event fields that are safe to pass to the pipeline."""
    sanitized: dict[str, Any] = {
        "object_kind": event.object_kind,
        "project": event.project.model_dump(
            include={"id", "name", "path_with_namespace", "default_branch", "web_url"}
        ),
        "user": event.user.model_dump(include={"id", "username", "name"}) if event.user else None,
    }

    if isinstance(event, NoteEvent):
        note = event.object_attributes
        sanitized["note"] = {
            "id": note.id,
            "body": note.note,
            "noteable_type": note.noteable_type,
            "noteable_id": note.noteable_id,
            "created_at": note.created_at,
        }
    elif isinstance(event, IssueEvent):
        attrs = event.object_attributes
        sanitized["issue"] = {"iid": attrs.iid, "title": attrs.title, "state": attrs.state}
    elif isinstance(event, MergeRequestEvent):
        attrs = event.object_attributes
        sanitized["merge_request"] = {
            "iid": attrs.iid,
            "title": attrs.title,
            "state": attrs.state,
            "source_branch": attrs.source_branch,
            "target_branch": attrs.target_branch,
        }

    return sanitized


class WebhookHandler:
    """Forwards validated triggers to the CI pipeline."""

    def __init__(
        self,
        config: ActionConfig,
        settings: GitLabSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.settings = settings
        self._transport = transport

    async def handle_webhook(self, event: GitLabEvent, trigger_result: TriggerResult) -> dict:
        """Trigger the pipeline for a classified webhook event."""
        data = trigger_result.model_copy(update={"project_id": event.project.id}).to_trigger_data()
        data["originalEvent"] = sanitize_event(event)
        return await trigger_pipeline(
            event.project.id, data, self.config, self.settings, transport=self._transport
        )

    async def handle_manual_trigger(self, trigger_result: TriggerResult) -> dict:
        """Trigger the pipeline for a direct invocation; the prompt travels in the data."""
        if not trigger_result.project_id:
            raise ValueError("Project ID is required for manual trigger")
        return await trigger_pipeline(
            trigger_result.project_id,
            trigger_result.to_trigger_data(),
            self.config,
            self.settings,
            transport=self._transport,
        )
