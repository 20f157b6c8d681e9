"""
Process-wide configuration.

Values come from the environment (optionally seeded from a .env file by
the entry points). Both models are frozen: they are loaded once at start
and passed explicitly to every component that needs them.
"""

import logging
import os
from typing import Optional

from pydantic import BaseModel, ConfigDict

from gitlab_agent.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_TRIGGER_PHRASE = "@claude"
DEFAULT_LABEL_TRIGGER = "claude"
DEFAULT_BASE_BRANCH = "main"
DEFAULT_BRANCH_PREFIX = "claude/"
DEFAULT_MODEL = "claude-3-5-sonnet-20241022"


class ActionConfig(BaseModel):
    """How the assistant is triggered and what it is allowed to do."""
    model_config = ConfigDict(frozen=True)

    trigger_phrase: str = DEFAULT_TRIGGER_PHRASE
    assignee_trigger: Optional[str] = None
    label_trigger: Optional[str] = DEFAULT_LABEL_TRIGGER
    base_branch: str = DEFAULT_BASE_BRANCH
    branch_prefix: str = DEFAULT_BRANCH_PREFIX
    max_turns: int = 10
    timeout_minutes: int = 30
    model: str = DEFAULT_MODEL
    custom_instructions: Optional[str] = None
    allowed_tools: list[str] = []
    disallowed_tools: list[str] = []
    use_bedrock: bool = False
    use_vertex: bool = False


class GitLabSettings(BaseModel):
    """Connection details for the GitLab instance."""
    model_config = ConfigDict(frozen=True)

    url: Optional[str] = None
    token: Optional[str] = None
    webhook_secret: Optional[str] = None
    trigger_token: Optional[str] = None
    pipeline_ref: str = "main"

    @property
    def api_url(self) -> str:
        if not self.url:
            raise ConfigError("GITLAB_URL must be set")
        return self.url.rstrip("/") + "/api/v4"

    def require(self, *fields: str) -> "GitLabSettings":
        """Raise ConfigError unless every named field has a value."""
        missing = [f for f in fields if not getattr(self, f)]
        if missing:
            names = " and ".join(_ENV_NAMES[f] for f in missing)
            raise ConfigError(f"{names} must be set")
        return self


_ENV_NAMES = {
    "url": "GITLAB_URL",
    "token": "GITLAB_TOKEN",
    "webhook_secret": "GITLAB_WEBHOOK_SECRET",
    "trigger_token": "GITLAB_TRIGGER_TOKEN",
}


def _env(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    return value if value else default


def _env_list(name: str) -> list[str]:
    raw = os.getenv(name) or ""
    return [item.strip() for item in raw.split(",") if item.strip()]


def _env_bool(name: str) -> bool:
    return (os.getenv(name) or "").strip().lower() in ("1", "true", "yes")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


def load_action_config() -> ActionConfig:
    """Build the ActionConfig from environment variables."""
    return ActionConfig(
        trigger_phrase=_env("TRIGGER_PHRASE", DEFAULT_TRIGGER_PHRASE),
        assignee_trigger=_env("ASSIGNEE_TRIGGER"),
        label_trigger=_env("LABEL_TRIGGER", DEFAULT_LABEL_TRIGGER),
        base_branch=_env("BASE_BRANCH", DEFAULT_BASE_BRANCH),
        branch_prefix=_env("BRANCH_PREFIX", DEFAULT_BRANCH_PREFIX),
        max_turns=_env_int("MAX_TURNS", 10),
        timeout_minutes=_env_int("TIMEOUT_MINUTES", 30),
        model=_env("CLAUDE_MODEL", DEFAULT_MODEL),
        custom_instructions=_env("CUSTOM_INSTRUCTIONS"),
        allowed_tools=_env_list("ALLOWED_TOOLS"),
        disallowed_tools=_env_list("DISALLOWED_TOOLS"),
        use_bedrock=_env_bool("USE_BEDROCK"),
        use_vertex=_env_bool("USE_VERTEX"),
    )


def load_gitlab_settings() -> GitLabSettings:
    """Build GitLabSettings from environment variables.

    Nothing is required here; callers use ``require()`` for the values
    their code path depends on.
    """
    settings = GitLabSettings(
        url=_env("GITLAB_URL"),
        token=_env("GITLAB_TOKEN"),
        webhook_secret=_env("GITLAB_WEBHOOK_SECRET"),
        trigger_token=_env("GITLAB_TRIGGER_TOKEN"),
        pipeline_ref=_env("PIPELINE_REF", "main"),
    )
    if not settings.webhook_secret:
        logger.debug("GITLAB_WEBHOOK_SECRET not set")
    return settings
