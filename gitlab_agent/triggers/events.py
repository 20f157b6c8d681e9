"""
GitLab webhook event models.

The payload is a tagged union on ``object_kind``. ``parse_event`` turns a
raw JSON body into one of the concrete event classes below; kinds we do
not model raise UnsupportedEventError so callers can ignore them.
"""

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

from gitlab_agent.errors import UnsupportedEventError
from gitlab_agent.tools.gitlab import User


class EventProject(BaseModel):
    """Project block embedded in every webhook."""
    id: int
    name: Optional[str] = None
    path_with_namespace: Optional[str] = None
    default_branch: Optional[str] = None
    web_url: Optional[str] = None


class EventLabel(BaseModel):
    id: Optional[int] = None
    title: str
    color: Optional[str] = None


class NoteAttributes(BaseModel):
    id: int
    note: str = ""
    noteable_type: Optional[str] = None  # Issue, MergeRequest, Commit, Snippet
    noteable_id: Optional[int] = None
    author_id: Optional[int] = None
    system: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    url: Optional[str] = None


class NoteableRef(BaseModel):
    """Issue or merge request a note belongs to."""
    id: Optional[int] = None
    iid: int
    title: Optional[str] = None
    state: Optional[str] = None


class ResourceAttributes(BaseModel):
    """object_attributes of issue and merge_request hooks."""
    id: Optional[int] = None
    iid: int
    title: str = ""
    description: Optional[str] = None
    state: Optional[str] = None
    action: Optional[str] = None
    source_branch: Optional[str] = None
    target_branch: Optional[str] = None


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    event_type: Optional[str] = None
    user: Optional[User] = None
    project: EventProject


class NoteEvent(_Event):
    object_kind: Literal["note"]
    object_attributes: NoteAttributes
    issue: Optional[NoteableRef] = None
    merge_request: Optional[NoteableRef] = None


class IssueEvent(_Event):
    object_kind: Literal["issue"]
    object_attributes: ResourceAttributes
    assignees: list[User] = []
    labels: list[EventLabel] = []


class MergeRequestEvent(_Event):
    object_kind: Literal["merge_request"]
    object_attributes: ResourceAttributes
    assignees: list[User] = []
    labels: list[EventLabel] = []


class _RefEvent(_Event):
    ref: Optional[str] = None
    checkout_sha: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _user_from_flat_fields(cls, data: Any) -> Any:
        # push hooks carry user_* fields instead of a user object
        if isinstance(data, dict) and not data.get("user") and data.get("user_username"):
            data = {
                **data,
                "user": {
                    "id": data.get("user_id"),
                    "username": data["user_username"],
                    "name": data.get("user_name"),
                },
            }
        return data


class PushEvent(_RefEvent):
    object_kind: Literal["push"]


class TagPushEvent(_RefEvent):
    object_kind: Literal["tag_push"]


GitLabEvent = Annotated[
    Union[NoteEvent, IssueEvent, MergeRequestEvent, PushEvent, TagPushEvent],
    Field(discriminator="object_kind"),
]

EVENT_KINDS = ("note", "issue", "merge_request", "push", "tag_push")

_event_adapter: TypeAdapter = TypeAdapter(GitLabEvent)


def parse_event(payload: dict[str, Any]) -> GitLabEvent:
    """Validate a webhook body into a typed event.

    Raises:
        UnsupportedEventError: object_kind is not one we model.
        pydantic.ValidationError: the payload does not match its kind.
    """
    kind = payload.get("object_kind") if isinstance(payload, dict) else None
    if kind not in EVENT_KINDS:
        raise UnsupportedEventError(kind)
    return _event_adapter.validate_python(payload)
