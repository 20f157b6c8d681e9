"""CI pipeline entry points."""
