"""Detection of automation accounts."""

import re
from typing import Optional

from gitlab_agent.tools.gitlab import User

BOT_PATTERNS = [
    re.compile(r"bot$", re.IGNORECASE),
    re.compile(r"\[bot\]$", re.IGNORECASE),
    re.compile(r"^gitlab-", re.IGNORECASE),
    re.compile(r"^github-", re.IGNORECASE),
    re.compile(r"service$", re.IGNORECASE),
    re.compile(r"automation$", re.IGNORECASE),
]


def _matches(value: Optional[str]) -> bool:
    if not value:
        return False
    return any(p.search(value) for p in BOT_PATTERNS)


def is_bot_user(user: Optional[User]) -> bool:
    """True when the username or display name looks like an automation account."""
    if user is None:
        return False
    return _matches(user.username) or _matches(user.name)
