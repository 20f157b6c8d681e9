import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx
from pydantic import BaseModel

from gitlab_agent.config import GitLabSettings
from gitlab_agent.errors import GitLabAPIError

logger = logging.getLogger(__name__)


class User(BaseModel):
    """A GitLab user as embedded in events and API records."""
    id: Optional[int] = None
    username: str
    name: Optional[str] = None
    email: Optional[str] = None
    avatar_url: Optional[str] = None


class Project(BaseModel):
    """A GitLab project."""
    id: int
    name: str
    path: Optional[str] = None
    path_with_namespace: str
    default_branch: Optional[str] = None
    web_url: str


class Note(BaseModel):
    """A discussion comment on an issue or merge request."""
    id: int
    body: str
    author: Optional[User] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    system: bool = False
    noteable_type: Optional[str] = None
    noteable_id: Optional[int] = None


class Issue(BaseModel):
    """A GitLab issue."""
    id: int
    iid: int
    title: str
    description: Optional[str] = None
    state: str  # opened, closed
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    author: Optional[User] = None
    assignees: list[User] = []
    labels: list[str] = []
    web_url: Optional[str] = None
    project_id: Optional[int] = None


class MergeRequest(Issue):
    """A merge request, with branch and merge state on top of issue fields."""
    state: str  # opened, closed, merged, locked
    source_branch: str
    target_branch: str
    sha: Optional[str] = None
    changes_count: Optional[str] = None
    merge_status: Optional[str] = None


class Commit(BaseModel):
    """A commit."""
    id: str
    short_id: str
    title: str
    message: Optional[str] = None
    author_name: Optional[str] = None
    author_email: Optional[str] = None
    authored_date: Optional[str] = None
    committer_name: Optional[str] = None
    committer_email: Optional[str] = None
    committed_date: Optional[str] = None
    web_url: Optional[str] = None


class Diff(BaseModel):
    """One file's change descriptor inside a merge request."""
    old_path: str
    new_path: str
    a_mode: Optional[str] = None
    b_mode: Optional[str] = None
    new_file: bool = False
    renamed_file: bool = False
    deleted_file: bool = False
    diff: Optional[str] = None


class RepositoryFile(BaseModel):
    """A file read from the repository; content is base64 on the wire."""
    file_name: Optional[str] = None
    file_path: str
    size: Optional[int] = None
    encoding: Optional[str] = None
    content_sha256: Optional[str] = None
    ref: Optional[str] = None
    blob_id: Optional[str] = None
    commit_id: Optional[str] = None
    last_commit_id: Optional[str] = None
    content: Optional[str] = None


class Branch(BaseModel):
    """A repository branch."""
    name: str
    merged: bool = False
    protected: bool = False
    default: bool = False
    web_url: Optional[str] = None


class TreeItem(BaseModel):
    """An entry of the repository tree listing."""
    id: str
    name: str
    type: str  # tree, blob
    path: str
    mode: Optional[str] = None


class MergeRequestChanges(MergeRequest):
    """Merge request with its diff list."""
    changes: list[Diff] = []


class GitLabClient:
    """Thin async client for the GitLab REST API (v4).

    Every call is a single request/response; non-2xx responses raise
    GitLabAPIError carrying the status code and body text.
    """

    def __init__(
        self,
        settings: GitLabSettings,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 30.0,
    ):
        settings.require("url", "token")
        self.base_url = settings.api_url
        self.headers = {
            "Authorization": f"Bearer {settings.token}",
            "Content-Type": "application/json",
        }
        self._transport = transport
        self._timeout = timeout

    async def _request(self, method: str, endpoint: str, **kwargs) -> Any:
        url = f"{self.base_url}{endpoint}"
        async with httpx.AsyncClient(
            timeout=self._timeout, transport=self._transport
        ) as client:
            response = await client.request(method, url, headers=self.headers, **kwargs)
            try:
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                raise GitLabAPIError(e.response.status_code, e.response.text, url=url)
        if not response.content:
            return None
        return response.json()

    # =========================================================================
    # Projects
    # =========================================================================

    async def get_project(self, project_id: int) -> Project:
        data = await self._request("GET", f"/projects/{project_id}")
        return Project.model_validate(data)

    # =========================================================================
    # Issues
    # =========================================================================

    async def get_issue(self, project_id: int, issue_iid: int) -> Issue:
        data = await self._request("GET", f"/projects/{project_id}/issues/{issue_iid}")
        return Issue.model_validate(data)

    async def get_issue_notes(self, project_id: int, issue_iid: int) -> list[Note]:
        data = await self._request(
            "GET",
            f"/projects/{project_id}/issues/{issue_iid}/notes",
            params={"sort": "asc", "order_by": "created_at"},
        )
        return [Note.model_validate(n) for n in data or []]

    async def create_issue_note(self, project_id: int, issue_iid: int, body: str) -> Note:
        data = await self._request(
            "POST", f"/projects/{project_id}/issues/{issue_iid}/notes", json={"body": body}
        )
        return Note.model_validate(data)

    async def update_issue_note(
        self, project_id: int, issue_iid: int, note_id: int, body: str
    ) -> Note:
        data = await self._request(
            "PUT",
            f"/projects/{project_id}/issues/{issue_iid}/notes/{note_id}",
            json={"body": body},
        )
        return Note.model_validate(data)

    # =========================================================================
    # Merge requests
    # =========================================================================

    async def get_merge_request(self, project_id: int, mr_iid: int) -> MergeRequest:
        data = await self._request("GET", f"/projects/{project_id}/merge_requests/{mr_iid}")
        return MergeRequest.model_validate(data)

    async def get_merge_request_notes(self, project_id: int, mr_iid: int) -> list[Note]:
        data = await self._request(
            "GET",
            f"/projects/{project_id}/merge_requests/{mr_iid}/notes",
            params={"sort": "asc", "order_by": "created_at"},
        )
        return [Note.model_validate(n) for n in data or []]

    async def create_merge_request_note(self, project_id: int, mr_iid: int, body: str) -> Note:
        data = await self._request(
            "POST",
            f"/projects/{project_id}/merge_requests/{mr_iid}/notes",
            json={"body": body},
        )
        return Note.model_validate(data)

    async def update_merge_request_note(
        self, project_id: int, mr_iid: int, note_id: int, body: str
    ) -> Note:
        data = await self._request(
            "PUT",
            f"/projects/{project_id}/merge_requests/{mr_iid}/notes/{note_id}",
            json={"body": body},
        )
        return Note.model_validate(data)

    async def get_merge_request_commits(self, project_id: int, mr_iid: int) -> list[Commit]:
        data = await self._request(
            "GET", f"/projects/{project_id}/merge_requests/{mr_iid}/commits"
        )
        return [Commit.model_validate(c) for c in data or []]

    async def get_merge_request_changes(
        self, project_id: int, mr_iid: int
    ) -> MergeRequestChanges:
        data = await self._request(
            "GET", f"/projects/{project_id}/merge_requests/{mr_iid}/changes"
        )
        return MergeRequestChanges.model_validate(data)

    # =========================================================================
    # Branches
    # =========================================================================

    async def get_branch(self, project_id: int, branch: str) -> Branch:
        data = await self._request(
            "GET", f"/projects/{project_id}/repository/branches/{quote(branch, safe='')}"
        )
        return Branch.model_validate(data)

    async def create_branch(self, project_id: int, branch: str, ref: str) -> Branch:
        data = await self._request(
            "POST",
            f"/projects/{project_id}/repository/branches",
            json={"branch": branch, "ref": ref},
        )
        return Branch.model_validate(data)

    async def delete_branch(self, project_id: int, branch: str) -> None:
        await self._request(
            "DELETE", f"/projects/{project_id}/repository/branches/{quote(branch, safe='')}"
        )

    # =========================================================================
    # Files and commits
    # =========================================================================

    async def get_file(self, project_id: int, file_path: str, ref: str) -> RepositoryFile:
        """Read a file; ``content`` is returned base64-encoded as GitLab sends it."""
        data = await self._request(
            "GET",
            f"/projects/{project_id}/repository/files/{quote(file_path, safe='')}",
            params={"ref": ref},
        )
        return RepositoryFile.model_validate(data)

    async def create_commit(
        self,
        project_id: int,
        branch: str,
        commit_message: str,
        actions: list[dict[str, Any]],
    ) -> Commit:
        """Create one commit applying every action atomically.

        Each action is a dict with ``action`` (create, update, delete, move,
        chmod), ``file_path`` and, for content actions, ``content`` and
        ``encoding``.
        """
        data = await self._request(
            "POST",
            f"/projects/{project_id}/repository/commits",
            json={"branch": branch, "commit_message": commit_message, "actions": actions},
        )
        return Commit.model_validate(data)

    async def get_repository_tree(
        self, project_id: int, path: str = "", ref: str = "main", recursive: bool = False
    ) -> list[TreeItem]:
        data = await self._request(
            "GET",
            f"/projects/{project_id}/repository/tree",
            params={"ref": ref, "path": path, "recursive": str(recursive).lower()},
        )
        return [TreeItem.model_validate(item) for item in data or []]

    # =========================================================================
    # Users
    # =========================================================================

    async def get_current_user(self) -> User:
        data = await self._request("GET", "/user")
        return User.model_validate(data)
