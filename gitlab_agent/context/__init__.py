"""Repository context assembly for the assistant."""

from gitlab_agent.context.fetcher import ContextFetcher, is_relevant_file
from gitlab_agent.context.formatter import ContextFormatter
from gitlab_agent.context.models import Context

__all__ = [
    "Context",
    "ContextFetcher",
    "ContextFormatter",
    "is_relevant_file",
]
