"""GitLab assistant trigger and context engine."""

__version__ = "1.0.0"
