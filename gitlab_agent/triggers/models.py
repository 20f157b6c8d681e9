"""Data models for trigger classification."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from gitlab_agent.tools.gitlab import Note, User


class TriggerType(str, Enum):
    """Why the assistant was invoked."""
    COMMENT = "comment"  # Trigger phrase in a note, title or description
    ASSIGNEE = "assignee"  # Configured user assigned
    LABEL = "label"  # Configured label applied
    DIRECT = "direct"  # Programmatic invocation


class ResourceType(str, Enum):
    """The kind of resource the assistant acts on."""
    ISSUE = "issue"
    MERGE_REQUEST = "merge_request"


class TriggerResult(BaseModel):
    """Outcome of evaluating one event.

    Serialized in camelCase, which is the shape of the CLAUDE_TRIGGER_DATA
    pipeline variable. ``resource_id`` is always the project-scoped iid.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    should_trigger: bool = False
    trigger_type: Optional[TriggerType] = None
    resource_type: Optional[ResourceType] = None
    resource_id: Optional[int] = None
    project_id: Optional[int] = None
    triggered_by: Optional[User] = None
    trigger_comment: Optional[Note] = None
    prompt: Optional[str] = None

    def to_trigger_data(self) -> dict:
        """Wire form used for pipeline variables and HTTP responses."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
