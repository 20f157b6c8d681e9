"""
Pipeline entry point: prepare the assistant run.

Needs GITLAB_URL, GITLAB_TOKEN and CLAUDE_TRIGGER_DATA. Results go to
``CLAUDE_RESULTS_FILE`` (default ``claude-results.env``). Any failure
exits with status 1.
"""

import asyncio
import logging
import os
import sys
from typing import Optional

import httpx

from gitlab_agent.config import load_action_config, load_gitlab_settings
from gitlab_agent.entrypoints.outputs import setup_logging, write_outputs
from gitlab_agent.errors import ConfigError, GitLabAgentError
from gitlab_agent.tools.gitlab import GitLabClient
from gitlab_agent.triggers.validator import TriggerValidator
from gitlab_agent.workflows.models import PrepareResult
from gitlab_agent.workflows.prepare import prepare_run

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_FILE = "claude-results.env"


async def run(transport: Optional[httpx.AsyncBaseTransport] = None) -> PrepareResult:
    """Read the environment, prepare the run and write the outputs."""
    settings = load_gitlab_settings().require("url", "token")
    trigger_data = os.getenv("CLAUDE_TRIGGER_DATA")
    if not trigger_data:
        raise ConfigError("CLAUDE_TRIGGER_DATA environment variable is required")

    config = load_action_config()
    trigger_result = TriggerValidator(config).validate_pipeline_trigger(trigger_data)
    if not trigger_result.should_trigger:
        raise ConfigError("CLAUDE_TRIGGER_DATA is not valid trigger data")

    client = GitLabClient(settings, transport=transport)
    result = await prepare_run(client, trigger_result, config)

    output_file = os.getenv("CLAUDE_RESULTS_FILE", DEFAULT_OUTPUT_FILE)
    write_outputs(output_file, result.to_outputs(settings.url))

    logger.info("GitLab preparation completed successfully")
    logger.info(f"Prompt file created at: {result.prompt_file}")
    logger.info(f"Claude comment ID: {result.comment_id}")
    logger.info(f"Branch: {result.branch_name}")
    return result


def main() -> None:
    setup_logging()
    try:
        asyncio.run(run())
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)
    except (GitLabAgentError, httpx.HTTPError, ValueError) as e:
        logger.error(f"GitLab preparation failed: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
