"""Aggregate handed from the context fetcher to the prompt builder."""

from typing import Optional

from pydantic import BaseModel, model_validator

from gitlab_agent.tools.gitlab import (
    Commit,
    Diff,
    Issue,
    MergeRequest,
    Note,
    Project,
    RepositoryFile,
)
from gitlab_agent.triggers.models import ResourceType, TriggerResult


class Context(BaseModel):
    """Everything known about the resource the assistant will work on."""
    project: Project
    issue: Optional[Issue] = None
    merge_request: Optional[MergeRequest] = None
    notes: list[Note] = []
    trigger_result: TriggerResult
    commits: list[Commit] = []
    diffs: list[Diff] = []
    files: list[RepositoryFile] = []

    @model_validator(mode="after")
    def _one_resource(self) -> "Context":
        if self.issue is not None and self.merge_request is not None:
            raise ValueError("Context holds both an issue and a merge request")
        resource_type = self.trigger_result.resource_type
        if resource_type == ResourceType.ISSUE and self.issue is None:
            raise ValueError("Issue trigger without an issue in context")
        if resource_type == ResourceType.MERGE_REQUEST and self.merge_request is None:
            raise ValueError("Merge request trigger without a merge request in context")
        return self

    @property
    def is_merge_request(self) -> bool:
        return self.merge_request is not None
