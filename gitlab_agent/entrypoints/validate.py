"""
Pipeline entry point: validate CLAUDE_TRIGGER_DATA.

Writes ``TRIGGER_VALID=true|false`` to the validation dotenv file
(``TRIGGER_VALIDATION_FILE``, default ``trigger-validation.env``).
"""

import logging
import os
import sys

from gitlab_agent.config import load_action_config
from gitlab_agent.entrypoints.outputs import setup_logging, write_outputs
from gitlab_agent.triggers.validator import TriggerValidator

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_FILE = "trigger-validation.env"


def run() -> bool:
    """Validate the trigger data in the environment and record the verdict."""
    output_file = os.getenv("TRIGGER_VALIDATION_FILE", DEFAULT_OUTPUT_FILE)
    trigger_data = os.getenv("CLAUDE_TRIGGER_DATA")

    if not trigger_data:
        logger.info("No CLAUDE_TRIGGER_DATA found, skipping validation")
        write_outputs(output_file, {"TRIGGER_VALID": "false"})
        return False

    validator = TriggerValidator(load_action_config())
    result = validator.validate_pipeline_trigger(trigger_data)

    if result.should_trigger:
        logger.info(
            f"Trigger validation successful: {result.trigger_type.value} "
            f"{result.resource_type.value if result.resource_type else None} "
            f"#{result.resource_id} in project {result.project_id}"
        )
    else:
        logger.warning("Trigger validation failed")

    write_outputs(output_file, {"TRIGGER_VALID": "true" if result.should_trigger else "false"})
    return result.should_trigger


def main() -> None:
    setup_logging()
    try:
        run()
    except Exception as e:
        logger.error(f"Trigger validation error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
