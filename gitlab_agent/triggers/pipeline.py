"""
CI pipeline trigger call.

Starts the assistant pipeline through GitLab's pipeline trigger API,
passing the trigger data and the flattened ActionConfig as variables.
"""

import json
import logging
from typing import Any

import httpx

from gitlab_agent.config import ActionConfig, GitLabSettings
from gitlab_agent.errors import PipelineTriggerError

logger = logging.getLogger(__name__)


def build_pipeline_variables(data: dict[str, Any], config: ActionConfig) -> dict[str, str]:
    """Form fields (minus token and ref) for the trigger request."""
    variables = {
        "variables[CLAUDE_TRIGGER_DATA]": json.dumps(data),
        "variables[TRIGGER_VALID]": "true",
        "variables[CLAUDE_MODEL]": config.model,
        "variables[TRIGGER_PHRASE]": config.trigger_phrase,
        "variables[BASE_BRANCH]": config.base_branch,
        "variables[BRANCH_PREFIX]": config.branch_prefix,
        "variables[MAX_TURNS]": str(config.max_turns),
        "variables[TIMEOUT_MINUTES]": str(config.timeout_minutes),
    }

    if config.custom_instructions:
        variables["variables[CUSTOM_INSTRUCTIONS]"] = config.custom_instructions
    if config.allowed_tools:
        variables["variables[ALLOWED_TOOLS]"] = ",".join(config.allowed_tools)
    if config.disallowed_tools:
        variables["variables[DISALLOWED_TOOLS]"] = ",".join(config.disallowed_tools)
    if config.use_bedrock:
        variables["variables[USE_BEDROCK]"] = "true"
    if config.use_vertex:
        variables["variables[USE_VERTEX]"] = "true"

    return variables


async def trigger_pipeline(
    project_id: int,
    data: dict[str, Any],
    config: ActionConfig,
    settings: GitLabSettings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, Any]:
    """
    Trigger the assistant pipeline for a project.

    Args:
        project_id: Project whose pipeline is triggered
        data: Trigger data, serialized into CLAUDE_TRIGGER_DATA
        config: Action configuration forwarded as pipeline variables
        settings: Needs url and trigger_token
        transport: Optional httpx transport (tests)

    Returns:
        The pipeline record returned by GitLab

    Raises:
        ConfigError: GITLAB_URL or GITLAB_TRIGGER_TOKEN is missing
        PipelineTriggerError: GitLab answered with a non-2xx status
    """
    settings.require("url", "trigger_token")
    url = f"{settings.api_url}/projects/{project_id}/trigger/pipeline"

    form = {
        "token": settings.trigger_token,
        "ref": settings.pipeline_ref,
        **build_pipeline_variables(data, config),
    }

    logger.info(
        f"Triggering pipeline for project {project_id} on {settings.pipeline_ref}: "
        f"{data.get('triggerType')} {data.get('resourceType')} #{data.get('resourceId')}"
    )

    async with httpx.AsyncClient(timeout=30.0, transport=transport) as client:
        response = await client.post(url, data=form)

    if not response.is_success:
        raise PipelineTriggerError(response.status_code, response.text)

    pipeline = response.json()
    logger.info(f"Pipeline triggered successfully: {pipeline.get('id')} {pipeline.get('web_url', '')}")
    return pipeline
