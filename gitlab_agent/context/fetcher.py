"""
Context fetcher.

Pulls the project, the triggering issue or merge request, its discussion
and, for merge requests, commits, diffs and the text of changed files.
"""

import asyncio
import base64
import logging
import re
from typing import Optional

from gitlab_agent.context.models import Context
from gitlab_agent.tools.gitlab import Diff, GitLabClient, RepositoryFile
from gitlab_agent.triggers.models import ResourceType, TriggerResult

logger = logging.getLogger(__name__)

MAX_FILES = 20

EXCLUDE_PATTERNS = [
    re.compile(r"\.(png|jpe?g|gif|ico|svg|webp|bmp|pdf|zip|tar|gz|tgz|jar|exe|bin|dll|so|dylib|woff2?|ttf|eot)$", re.IGNORECASE),
    re.compile(r"\.lock$", re.IGNORECASE),
    re.compile(r"package-lock\.json$", re.IGNORECASE),
    re.compile(r"pnpm-lock\.yaml$", re.IGNORECASE),
    re.compile(r"\.min\.(js|css)$", re.IGNORECASE),
    re.compile(r"(^|/)node_modules/", re.IGNORECASE),
    re.compile(r"(^|/)\.git/", re.IGNORECASE),
    re.compile(r"(^|/)build/", re.IGNORECASE),
    re.compile(r"(^|/)dist/", re.IGNORECASE),
]


def is_relevant_file(file_path: str) -> bool:
    """False for binaries, lockfiles, minified assets and build output."""
    return not any(p.search(file_path) for p in EXCLUDE_PATTERNS)


def select_files(diffs: list[Diff], max_files: int = MAX_FILES) -> list[str]:
    """Paths worth reading from a diff list, in diff order, capped."""
    paths = [
        d.new_path
        for d in diffs
        if not d.deleted_file and is_relevant_file(d.new_path)
    ]
    return paths[:max_files]


def decode_content(content: Optional[str]) -> Optional[str]:
    if content is None:
        return None
    return base64.b64decode(content).decode("utf-8", errors="replace")


class ContextFetcher:
    """Builds a Context from the GitLab API."""

    def __init__(self, client: GitLabClient):
        self.client = client

    async def fetch_full_context(
        self, project_id: int, trigger_result: TriggerResult
    ) -> Context:
        """
        Fetch everything the prompt needs for one trigger.

        Args:
            project_id: Project the resource lives in
            trigger_result: Classified trigger; resource_id is the iid

        Returns:
            Context with the issue or merge request populated according to
            ``trigger_result.resource_type``.
        """
        resource_type = trigger_result.resource_type
        resource_id = trigger_result.resource_id
        if resource_type is not None and not resource_id:
            raise ValueError(f"Trigger for a {resource_type.value} has no resource id")

        if resource_type == ResourceType.ISSUE:
            project, issue, notes = await asyncio.gather(
                self.client.get_project(project_id),
                self.client.get_issue(project_id, resource_id),
                self.client.get_issue_notes(project_id, resource_id),
            )
            return Context(
                project=project, issue=issue, notes=notes, trigger_result=trigger_result
            )

        if resource_type == ResourceType.MERGE_REQUEST:
            project, merge_request, notes = await asyncio.gather(
                self.client.get_project(project_id),
                self.client.get_merge_request(project_id, resource_id),
                self.client.get_merge_request_notes(project_id, resource_id),
            )
            commits = await self.client.get_merge_request_commits(project_id, resource_id)
            changes = await self.client.get_merge_request_changes(project_id, resource_id)
            diffs = changes.changes
            files = await self.fetch_modified_files(
                project_id, diffs, merge_request.source_branch
            )
            return Context(
                project=project,
                merge_request=merge_request,
                notes=notes,
                trigger_result=trigger_result,
                commits=commits,
                diffs=diffs,
                files=files,
            )

        project = await self.client.get_project(project_id)
        return Context(project=project, trigger_result=trigger_result)

    async def fetch_modified_files(
        self, project_id: int, diffs: list[Diff], ref: str
    ) -> list[RepositoryFile]:
        """Read changed files concurrently; failed reads are dropped."""
        paths = select_files(diffs)
        results = await asyncio.gather(
            *(self._fetch_file(project_id, path, ref) for path in paths)
        )
        return [f for f in results if f is not None]

    async def _fetch_file(
        self, project_id: int, file_path: str, ref: str
    ) -> Optional[RepositoryFile]:
        try:
            file = await self.client.get_file(project_id, file_path, ref)
            return file.model_copy(update={"content": decode_content(file.content)})
        except Exception as e:
            logger.warning(f"Failed to fetch file {file_path}: {e}")
            return None

    async def fetch_file_content(
        self, project_id: int, file_path: str, ref: str = "main"
    ) -> Optional[str]:
        """Decoded text of a single file, or None if it cannot be read."""
        file = await self._fetch_file(project_id, file_path, ref)
        return file.content if file else None

    async def fetch_project_files(
        self, project_id: int, ref: str = "main", max_depth: int = 3
    ) -> list[dict]:
        """Relevant paths of the repository tree down to ``max_depth``."""
        tree = await self.client.get_repository_tree(project_id, "", ref, recursive=True)
        return [
            {"path": item.path, "type": "file" if item.type == "blob" else "directory"}
            for item in tree
            if len(item.path.split("/")) <= max_depth and is_relevant_file(item.path)
        ]
