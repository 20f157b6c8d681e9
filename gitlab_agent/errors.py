"""Exception types shared across the trigger engine."""


class GitLabAgentError(Exception):
    """Base class for every error raised by this package."""


class ConfigError(GitLabAgentError):
    """A required configuration value is missing or invalid."""


class UnsupportedEventError(GitLabAgentError):
    """The webhook payload carries an object_kind we do not model."""

    def __init__(self, object_kind: str | None):
        self.object_kind = object_kind
        super().__init__(f"Unsupported GitLab event kind: {object_kind!r}")


class GitLabAPIError(GitLabAgentError):
    """Non-2xx response from the GitLab REST API."""

    def __init__(self, status_code: int, body: str, url: str | None = None):
        self.status_code = status_code
        self.body = body
        self.url = url
        super().__init__(f"GitLab API error: {status_code} - {body}")


class PipelineTriggerError(GitLabAgentError):
    """The CI trigger endpoint rejected the pipeline request."""

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Failed to trigger pipeline: {status_code} - {body}")


class PromptWriteError(GitLabAgentError):
    """The assembled prompt could not be persisted for the next stage."""
