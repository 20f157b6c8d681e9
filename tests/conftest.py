"""Shared pytest fixtures."""

import pytest

from gitlab_agent.config import ActionConfig, GitLabSettings

from factories import GITLAB_URL


@pytest.fixture
def config():
    return ActionConfig()


@pytest.fixture
def settings():
    return GitLabSettings(
        url=GITLAB_URL,
        token="glpat-test",
        webhook_secret="s3cret",
        trigger_token="trigger-token",
    )
