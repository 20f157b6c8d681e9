"""CI preparation workflow."""

from gitlab_agent.workflows.models import PrepareResult
from gitlab_agent.workflows.prepare import prepare_run, resolve_branch

__all__ = [
    "PrepareResult",
    "prepare_run",
    "resolve_branch",
]
