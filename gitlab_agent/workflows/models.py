"""Data models for the CI preparation workflow."""

from pydantic import BaseModel

from gitlab_agent.triggers.models import ResourceType


class PrepareResult(BaseModel):
    """Values exported to the pipeline stage that runs the assistant."""
    comment_id: int
    project_id: int
    resource_type: ResourceType
    resource_iid: int
    branch_name: str
    prompt_file: str
    allowed_tools: str
    disallowed_tools: str

    def to_outputs(self, gitlab_url: str) -> dict[str, str]:
        """Named string outputs for the next pipeline stage."""
        return {
            "CLAUDE_COMMENT_ID": str(self.comment_id),
            "PROJECT_ID": str(self.project_id),
            "RESOURCE_TYPE": self.resource_type.value,
            "RESOURCE_IID": str(self.resource_iid),
            "BRANCH_NAME": self.branch_name,
            "GITLAB_URL": gitlab_url,
            "ALLOWED_TOOLS": self.allowed_tools,
            "DISALLOWED_TOOLS": self.disallowed_tools,
        }
