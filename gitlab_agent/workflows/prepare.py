"""
CI preparation workflow.

Runs inside the pipeline started by the webhook receiver:

1. Fetch the repository context for the trigger
2. Pick (and if needed create) the branch the assistant works on
3. Post the progress comment the assistant keeps updating
4. Write the prompt and compute the tool permission lists
"""

import logging
from typing import Optional

import httpx

from gitlab_agent.config import ActionConfig
from gitlab_agent.context.fetcher import ContextFetcher
from gitlab_agent.context.formatter import ContextFormatter
from gitlab_agent.context.models import Context
from gitlab_agent.errors import GitLabAPIError
from gitlab_agent.prompt.builder import create_prompt
from gitlab_agent.tools.gitlab import GitLabClient
from gitlab_agent.triggers.models import ResourceType, TriggerResult
from gitlab_agent.workflows.models import PrepareResult

logger = logging.getLogger(__name__)


def resolve_branch(context: Context, config: ActionConfig) -> tuple[str, bool]:
    """
    Decide which branch the run pushes to.

    Returns:
        ``(branch, needs_create)``. Issues get ``<prefix>issue-<iid>``; open
        merge requests reuse their source branch; closed or merged ones get
        ``<prefix>mr-<iid>``.
    """
    if context.issue:
        return f"{config.branch_prefix}issue-{context.issue.iid}", True

    if context.merge_request:
        mr = context.merge_request
        if mr.state == "opened":
            return mr.source_branch, False
        return f"{config.branch_prefix}mr-{mr.iid}", True

    raise ValueError(
        f"Unsupported resource type: {context.trigger_result.resource_type}"
    )


async def _ensure_branch(
    client: GitLabClient, project_id: int, branch: str, ref: str
) -> None:
    try:
        await client.create_branch(project_id, branch, ref)
        logger.info(f"Created branch: {branch}")
    except (GitLabAPIError, httpx.HTTPError) as e:
        # usually the branch is left over from an earlier run
        logger.info(f"Branch {branch} already exists or creation failed: {e}")


async def prepare_run(
    client: GitLabClient,
    trigger_result: TriggerResult,
    config: ActionConfig,
    prompt_dir: Optional[str] = None,
) -> PrepareResult:
    """
    Prepare everything the assistant run needs.

    Args:
        client: GitLab API client
        trigger_result: Trigger parsed from CLAUDE_TRIGGER_DATA
        config: Action configuration
        prompt_dir: Where to write the prompt (defaults to PROMPT_DIR)

    Returns:
        PrepareResult with the values exported to the next stage

    Raises:
        GitLabAPIError: Context fetch or comment creation failed
        PromptWriteError: The prompt file could not be written
    """
    project_id = trigger_result.project_id
    resource_id = trigger_result.resource_id
    if not project_id or not resource_id or not trigger_result.resource_type:
        raise ValueError("Trigger data must include projectId, resourceType and resourceId")

    context = await ContextFetcher(client).fetch_full_context(project_id, trigger_result)
    logger.info(
        f"Fetched GitLab context: project={context.project.name}, "
        f"resource={trigger_result.resource_type.value} #{resource_id}, "
        f"notes={len(context.notes)}, files={len(context.files)}"
    )

    branch, needs_create = resolve_branch(context, config)
    if needs_create:
        await _ensure_branch(client, project_id, branch, config.base_branch)

    initial_body = ContextFormatter().format_initial_comment()
    if trigger_result.resource_type == ResourceType.ISSUE:
        comment = await client.create_issue_note(project_id, resource_id, initial_body)
    else:
        comment = await client.create_merge_request_note(project_id, resource_id, initial_body)
    logger.info(f"Created progress comment {comment.id}")

    prompt = create_prompt(context, config, str(comment.id), branch, prompt_dir=prompt_dir)

    return PrepareResult(
        comment_id=comment.id,
        project_id=project_id,
        resource_type=trigger_result.resource_type,
        resource_iid=resource_id,
        branch_name=branch,
        prompt_file=prompt.prompt_file,
        allowed_tools=prompt.allowed_tools,
        disallowed_tools=prompt.disallowed_tools,
    )
