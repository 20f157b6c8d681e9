"""
Markdown rendering of repository context and assistant status comments.
"""

import re
from datetime import datetime
from typing import Optional

from gitlab_agent.context.models import Context
from gitlab_agent.tools.gitlab import (
    Commit,
    Diff,
    Issue,
    MergeRequest,
    Note,
    Project,
    RepositoryFile,
    User,
)
from gitlab_agent.triggers.models import TriggerResult

SECTION_SEPARATOR = "\n\n---\n\n"
MAX_FILE_CHARS = 10000

SPINNER_HTML = (
    '<img src="https://github.com/user-attachments/assets/5ac382c7-e004-429b-8e35-7feb3e8f9c6f" '
    'width="14px" height="14px" style="vertical-align: middle; margin-left: 4px;" />'
)

STATUS_EMOJI = {
    "processing": "⚡",
    "completed": "✅",
    "error": "❌",
    "waiting": "⏳",
}

_RELATIVE_LINK_RE = re.compile(r"\[([^\]]+)\]\((?!https?://)[^)]+\)")
_CODE_BLOCK_RE = re.compile(r"```([^`]+)```")


def format_timestamp(value: Optional[str]) -> str:
    """Render an ISO timestamp as ``YYYY-MM-DD HH:MM:SS``; pass through anything else."""
    if not value:
        return "unknown"
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).strftime("%Y-%m-%d %H:%M:%S")
    except ValueError:
        return value


def _now() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def _author(user: Optional[User]) -> str:
    if user is None:
        return "@unknown"
    if user.name:
        return f"@{user.username} ({user.name})"
    return f"@{user.username}"


class ContextFormatter:
    """Renders a Context into the markdown sections embedded in the prompt."""

    def format_full_context(self, context: Context) -> str:
        sections = [self.format_project(context.project)]

        if context.issue:
            sections.append(self.format_issue(context.issue))

        if context.merge_request:
            sections.append(self.format_merge_request(context.merge_request))
            if context.commits:
                sections.append(self.format_commits(context.commits))
            if context.diffs:
                sections.append(self.format_diffs(context.diffs))

        if context.notes:
            sections.append(self.format_notes(context.notes))

        if context.files:
            sections.append(self.format_files(context.files))

        return SECTION_SEPARATOR.join(sections)

    def format_project(self, project: Project) -> str:
        return "\n".join([
            f"## Project: {project.name}",
            f"- **Path**: {project.path_with_namespace}",
            f"- **Default Branch**: {project.default_branch or 'unknown'}",
            f"- **URL**: {project.web_url}",
        ])

    def _resource_lines(self, resource: Issue) -> list[str]:
        lines = []
        assignees = ", ".join(f"@{a.username}" for a in resource.assignees)
        if assignees:
            lines.append(f"- **Assignees**: {assignees}")
        labels = ", ".join(resource.labels)
        if labels:
            lines.append(f"- **Labels**: {labels}")
        return lines

    def format_issue(self, issue: Issue) -> str:
        lines = [
            f"## Issue #{issue.iid}: {issue.title}",
            f"- **State**: {issue.state}",
            f"- **Author**: {_author(issue.author)}",
            f"- **Created**: {format_timestamp(issue.created_at)}",
            f"- **Updated**: {format_timestamp(issue.updated_at)}",
            *self._resource_lines(issue),
            f"- **URL**: {issue.web_url}",
            "",
            "### Description",
            issue.description or "No description provided.",
        ]
        return "\n".join(lines)

    def format_merge_request(self, mr: MergeRequest) -> str:
        lines = [
            f"## Merge Request !{mr.iid}: {mr.title}",
            f"- **State**: {mr.state}",
            f"- **Author**: {_author(mr.author)}",
            f"- **Source Branch**: {mr.source_branch}",
            f"- **Target Branch**: {mr.target_branch}",
            f"- **SHA**: {mr.sha}",
            f"- **Created**: {format_timestamp(mr.created_at)}",
            f"- **Updated**: {format_timestamp(mr.updated_at)}",
            *self._resource_lines(mr),
        ]
        if mr.merge_status:
            lines.append(f"- **Merge Status**: {mr.merge_status}")
        lines += [
            f"- **URL**: {mr.web_url}",
            "",
            "### Description",
            mr.description or "No description provided.",
        ]
        return "\n".join(lines)

    def format_notes(self, notes: list[Note]) -> str:
        user_notes = [n for n in notes if not n.system]
        if not user_notes:
            return "## Comments\nNo comments yet."

        formatted = "\n\n".join(
            f"### Comment by @{n.author.username if n.author else 'unknown'} "
            f"({format_timestamp(n.created_at)})\n{n.body}"
            for n in user_notes
        )
        return f"## Comments\n{formatted}"

    def format_commits(self, commits: list[Commit]) -> str:
        if not commits:
            return "## Commits\nNo commits in this merge request."

        formatted = "\n".join(
            f"- **{c.short_id}**: {c.title} ({c.author_name}, {format_timestamp(c.committed_date)})"
            for c in commits
        )
        return f"## Commits ({len(commits)} total)\n{formatted}"

    def format_diffs(self, diffs: list[Diff]) -> str:
        if not diffs:
            return "## File Changes\nNo file changes."

        lines = []
        for diff in diffs:
            status = "modified"
            if diff.new_file:
                status = "added"
            if diff.deleted_file:
                status = "deleted"
            if diff.renamed_file:
                status = "renamed"

            path = diff.new_path or diff.old_path
            line = f"- **{status}**: {path}"
            if diff.renamed_file and diff.old_path != diff.new_path:
                line += f" (from {diff.old_path})"
            lines.append(line)

        return f"## File Changes ({len(diffs)} files)\n" + "\n".join(lines)

    def format_files(self, files: list[RepositoryFile]) -> str:
        if not files:
            return "## File Contents\nNo files to display."

        blocks = []
        for file in files:
            content = file.content or "Content not available"
            if len(content) > MAX_FILE_CHARS:
                content = content[:MAX_FILE_CHARS] + "\n\n... (content truncated)"
            blocks.append(f"### File: {file.file_path}\n```\n{content}\n```")

        return "## File Contents\n" + "\n\n".join(blocks)

    def format_trigger_info(self, trigger_result: TriggerResult) -> str:
        trigger_type = trigger_result.trigger_type.value if trigger_result.trigger_type else None
        resource_type = trigger_result.resource_type.value if trigger_result.resource_type else None
        username = trigger_result.triggered_by.username if trigger_result.triggered_by else None
        return "\n".join([
            "## Trigger Information",
            f"- **Type**: {trigger_type}",
            f"- **Resource**: {resource_type} #{trigger_result.resource_id}",
            f"- **Triggered by**: @{username}",
        ])

    def format_progress_comment(self, status: str, details: Optional[str] = None) -> str:
        emoji = STATUS_EMOJI.get(status, "🤔")
        return (
            f"{emoji} **Claude is {status}** ({_now()})\n\n"
            f"{details or ''}\n\n"
            "---\n"
            "*This comment will be updated with progress*"
        )

    def format_initial_comment(self) -> str:
        """Body of the placeholder comment posted before the run starts."""
        return (
            f"🤔 **Claude is processing** {SPINNER_HTML}\n\n"
            "---\n"
            "*This comment will be updated with progress*"
        )

    def format_completion_comment(
        self,
        result: str,
        execution_time_ms: int,
        cost: Optional[float] = None,
        branch_name: Optional[str] = None,
        merge_request_url: Optional[str] = None,
    ) -> str:
        sections = [f"✅ **Claude completed** ({_now()})", "", result]
        if branch_name:
            sections.append(f"🌿 **Branch created**: `{branch_name}`")
        if merge_request_url:
            sections.append(f"🔗 **Merge Request**: {merge_request_url}")
        sections.append(f"⏱️ **Execution time**: {round(execution_time_ms / 1000)}s")
        if cost:
            sections.append(f"💰 **Cost**: ${cost:.4f}")
        return "\n".join(sections)

    def format_error_comment(self, error: Exception, execution_time_ms: int) -> str:
        return (
            f"❌ **Claude encountered an error** ({_now()})\n\n"
            f"```\n{error}\n```\n\n"
            f"⏱️ **Execution time**: {round(execution_time_ms / 1000)}s\n\n"
            "Please check the configuration and try again."
        )

    def sanitize_markdown(self, content: str) -> str:
        """Drop relative link targets and re-trim fenced code blocks."""
        content = _RELATIVE_LINK_RE.sub(r"[\1]", content)
        return _CODE_BLOCK_RE.sub(lambda m: "```\n" + m.group(1).strip() + "\n```", content)
