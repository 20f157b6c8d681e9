"""
Trigger classification.

Decides, for a single event, whether the assistant should act and on
which resource. The validator holds no state besides the ActionConfig it
was built with, so every method is a pure function of its inputs.
"""

import logging
from typing import Optional, Union

from pydantic import ValidationError

from gitlab_agent.config import ActionConfig
from gitlab_agent.tools.gitlab import Note, User
from gitlab_agent.triggers.bots import is_bot_user
from gitlab_agent.triggers.events import (
    GitLabEvent,
    IssueEvent,
    MergeRequestEvent,
    NoteEvent,
    PushEvent,
    TagPushEvent,
)
from gitlab_agent.triggers.models import ResourceType, TriggerResult, TriggerType

logger = logging.getLogger(__name__)


class TriggerValidator:
    """Classifies events against the configured triggers."""

    def __init__(self, config: ActionConfig):
        self.config = config

    def validate_trigger(self, event: GitLabEvent) -> TriggerResult:
        """
        Evaluate a webhook event.

        Bot accounts never trigger. Otherwise dispatch on the event kind;
        push and tag_push events are accepted but never trigger.
        """
        result = TriggerResult(project_id=event.project.id, triggered_by=event.user)

        if is_bot_user(event.user):
            logger.info(f"Ignoring event from bot user {event.user.username}")
            return result

        if isinstance(event, NoteEvent):
            return self._validate_note_event(event, result)
        elif isinstance(event, IssueEvent):
            return self._validate_resource_event(event, result, ResourceType.ISSUE)
        elif isinstance(event, MergeRequestEvent):
            return self._validate_resource_event(event, result, ResourceType.MERGE_REQUEST)
        elif isinstance(event, (PushEvent, TagPushEvent)):
            return result
        else:
            raise TypeError(f"Unhandled event type: {type(event).__name__}")

    def _validate_note_event(self, event: NoteEvent, result: TriggerResult) -> TriggerResult:
        note = event.object_attributes

        if note.system:
            return result

        if not self.contains_trigger_phrase(note.note):
            return result

        result.should_trigger = True
        result.trigger_type = TriggerType.COMMENT
        result.trigger_comment = Note(
            id=note.id,
            body=note.note,
            author=event.user,
            created_at=note.created_at,
            updated_at=note.updated_at,
            system=note.system,
            noteable_type=note.noteable_type,
            noteable_id=note.noteable_id,
        )

        if note.noteable_type == "Issue" and event.issue:
            result.resource_type = ResourceType.ISSUE
            result.resource_id = event.issue.iid
        elif note.noteable_type == "MergeRequest" and event.merge_request:
            result.resource_type = ResourceType.MERGE_REQUEST
            result.resource_id = event.merge_request.iid

        return result

    def _validate_resource_event(
        self,
        event: Union[IssueEvent, MergeRequestEvent],
        result: TriggerResult,
        resource_type: ResourceType,
    ) -> TriggerResult:
        """Assignee, then label, then phrase. First match wins."""
        attrs = event.object_attributes

        def _hit(trigger_type: TriggerType) -> TriggerResult:
            result.should_trigger = True
            result.trigger_type = trigger_type
            result.resource_type = resource_type
            result.resource_id = attrs.iid
            return result

        if self.config.assignee_trigger and any(
            a.username == self.config.assignee_trigger for a in event.assignees
        ):
            return _hit(TriggerType.ASSIGNEE)

        if self.config.label_trigger and any(
            label.title == self.config.label_trigger for label in event.labels
        ):
            return _hit(TriggerType.LABEL)

        if attrs.state == "opened":
            if self.contains_trigger_phrase(attrs.title) or self.contains_trigger_phrase(
                attrs.description or ""
            ):
                return _hit(TriggerType.COMMENT)

        return result

    def contains_trigger_phrase(self, text: Optional[str]) -> bool:
        """
        Case-insensitive substring match, plus an ``@phrase`` mention form.

        No word boundary is enforced, so ``@bot`` also matches ``@bottle``.
        """
        if not text:
            return False
        normalized_text = text.lower()
        normalized_phrase = self.config.trigger_phrase.lower()
        mention = "@" + normalized_phrase.replace("@", "", 1)
        return normalized_phrase in normalized_text or mention in normalized_text

    def validate_direct_trigger(
        self,
        project_id: int,
        resource_type: ResourceType,
        resource_id: int,
        prompt: Optional[str] = None,
        user_id: Optional[int] = None,
    ) -> TriggerResult:
        """Programmatic invocation: always triggers, values taken verbatim."""
        triggered_by = None
        if user_id:
            triggered_by = User(id=user_id, username="direct", name="Direct Trigger")
        return TriggerResult(
            should_trigger=True,
            trigger_type=TriggerType.DIRECT,
            resource_type=resource_type,
            resource_id=resource_id,
            project_id=project_id,
            triggered_by=triggered_by,
            prompt=prompt,
        )

    def validate_pipeline_trigger(self, trigger_data: str) -> TriggerResult:
        """
        Parse the serialized trigger blob handed to a CI pipeline.

        Malformed input never raises: it yields a non-triggering result
        with every field empty.
        """
        try:
            parsed = TriggerResult.model_validate_json(trigger_data)
        except (ValidationError, TypeError) as e:
            logger.warning(f"Could not parse pipeline trigger data: {e}")
            return TriggerResult()

        return parsed.model_copy(
            update={
                "should_trigger": True,
                "trigger_type": parsed.trigger_type or TriggerType.DIRECT,
            }
        )
