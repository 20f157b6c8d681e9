"""
GitLab file operations MCP server.

Gives the assistant run three tools: commit local files to the working
branch, delete files from it, and update its progress comment. The run's
coordinates come from the variables written by the prepare step.
"""

import base64
import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from fastmcp import FastMCP
from pydantic import BaseModel

from gitlab_agent.config import load_gitlab_settings
from gitlab_agent.errors import ConfigError, GitLabAPIError
from gitlab_agent.tools.gitlab import Commit, GitLabClient
from gitlab_agent.triggers.models import ResourceType

load_dotenv()

logger = logging.getLogger(__name__)

mcp = FastMCP(
    name="gitlab_file_ops",
    instructions="""
    File operations for the GitLab assistant run.

    - commit_files: commit local files to the working branch in one commit
    - delete_files: delete files from the working branch in one commit
    - update_claude_comment: replace the body of the progress comment
    """
)


class RunEnvironment(BaseModel):
    """Coordinates of the current assistant run."""
    project_id: int
    branch_name: str
    repo_dir: str
    comment_id: Optional[int] = None
    resource_type: Optional[str] = None
    resource_iid: Optional[int] = None

    @classmethod
    def from_env(cls) -> "RunEnvironment":
        project_id = os.getenv("PROJECT_ID")
        branch_name = os.getenv("BRANCH_NAME")
        if not project_id or not branch_name:
            raise ConfigError("PROJECT_ID and BRANCH_NAME environment variables are required")
        return cls(
            project_id=int(project_id),
            branch_name=branch_name,
            repo_dir=os.getenv("REPO_DIR") or os.getcwd(),
            comment_id=os.getenv("CLAUDE_COMMENT_ID") or None,
            resource_type=os.getenv("RESOURCE_TYPE") or None,
            resource_iid=os.getenv("RESOURCE_IID") or None,
        )


def repo_relative_path(file_path: str, repo_dir: str) -> str:
    """Path relative to the repository root; the resolved path must lie inside it."""
    root = Path(repo_dir).resolve()
    try:
        return (root / file_path).resolve().relative_to(root).as_posix()
    except ValueError:
        raise ValueError(
            f"Path '{file_path}' must be relative to repository root or within {root}"
        )


def _commit_summary(commit: Commit) -> dict[str, Any]:
    return commit.model_dump(
        include={"id", "short_id", "message", "author_name", "authored_date", "web_url"}
    )


# =============================================================================
# Operations
# =============================================================================

async def commit_repository_files(
    client: GitLabClient, run: RunEnvironment, files: list[str], message: str
) -> dict[str, Any]:
    """Commit local files in one commit, creating or updating each one."""
    actions = []
    paths = [repo_relative_path(f, run.repo_dir) for f in files]

    for path in paths:
        content = (Path(run.repo_dir) / path).read_bytes()
        try:
            await client.get_file(run.project_id, path, run.branch_name)
            action = "update"
        except GitLabAPIError as e:
            if e.status_code != 404:
                raise
            action = "create"
        actions.append({
            "action": action,
            "file_path": path,
            "content": base64.b64encode(content).decode("ascii"),
            "encoding": "base64",
        })

    commit = await client.create_commit(run.project_id, run.branch_name, message, actions)
    logger.info(f"Committed {len(paths)} file(s) to {run.branch_name}: {commit.short_id}")
    return {"commit": _commit_summary(commit), "files": [{"path": p} for p in paths]}


async def delete_repository_files(
    client: GitLabClient, run: RunEnvironment, files: list[str], message: str
) -> dict[str, Any]:
    """Delete files from the branch in one commit."""
    paths = [repo_relative_path(f, run.repo_dir) for f in files]
    actions = [{"action": "delete", "file_path": p} for p in paths]

    commit = await client.create_commit(run.project_id, run.branch_name, message, actions)
    logger.info(f"Deleted {len(paths)} file(s) on {run.branch_name}: {commit.short_id}")
    return {"commit": _commit_summary(commit), "deletedFiles": [{"path": p} for p in paths]}


async def update_progress_comment(
    client: GitLabClient, run: RunEnvironment, body: str
) -> dict[str, Any]:
    """Replace the body of the run's progress comment on its issue or MR."""
    if not run.comment_id:
        raise ConfigError("CLAUDE_COMMENT_ID environment variable is required")
    if not run.resource_type:
        raise ConfigError("RESOURCE_TYPE environment variable is required")
    if not run.resource_iid:
        raise ConfigError("RESOURCE_IID environment variable is required")

    if run.resource_type == ResourceType.ISSUE.value:
        note = await client.update_issue_note(
            run.project_id, run.resource_iid, run.comment_id, body
        )
    elif run.resource_type == ResourceType.MERGE_REQUEST.value:
        note = await client.update_merge_request_note(
            run.project_id, run.resource_iid, run.comment_id, body
        )
    else:
        raise ValueError(f"Unknown resource type: {run.resource_type}")

    return {
        "id": note.id,
        "body": note.body,
        "updated_at": note.updated_at,
        "author": note.author.username if note.author else None,
    }


def _client() -> GitLabClient:
    return GitLabClient(load_gitlab_settings())


# =============================================================================
# MCP tools
# =============================================================================

@mcp.tool
async def commit_files(files: list[str], message: str) -> str:
    """
    Commit one or more files to the GitLab repository in a single commit.

    Args:
        files: Paths relative to the repository root (e.g. ["src/main.js", "README.md"]).
            All files must exist locally.
        message: Commit message

    Returns:
        JSON summary of the commit, or an error message.
    """
    try:
        result = await commit_repository_files(_client(), RunEnvironment.from_env(), files, message)
        return json.dumps(result, indent=2)
    except Exception as e:
        logger.error(f"commit_files failed: {e}", exc_info=True)
        return f"Error: {e}"


@mcp.tool
async def delete_files(files: list[str], message: str) -> str:
    """
    Delete one or more files from the GitLab repository in a single commit.

    Args:
        files: Paths relative to the repository root (e.g. ["src/old-file.js"])
        message: Commit message

    Returns:
        JSON summary of the commit, or an error message.
    """
    try:
        result = await delete_repository_files(_client(), RunEnvironment.from_env(), files, message)
        return json.dumps(result, indent=2)
    except Exception as e:
        logger.error(f"delete_files failed: {e}", exc_info=True)
        return f"Error: {e}"


@mcp.tool
async def update_claude_comment(body: str) -> str:
    """
    Update the Claude comment with progress and results.

    Works for both issue and merge request comments.

    Args:
        body: The updated comment content

    Returns:
        JSON summary of the updated note, or an error message.
    """
    try:
        result = await update_progress_comment(_client(), RunEnvironment.from_env(), body)
        return json.dumps(result, indent=2)
    except Exception as e:
        logger.error(f"update_claude_comment failed: {e}", exc_info=True)
        return f"Error: {e}"


def main():
    # stdio carries the protocol, so logs go to stderr only
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    mcp.run()


if __name__ == "__main__":
    main()
