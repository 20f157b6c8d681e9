"""Shared plumbing for the CI entry points."""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv, set_key


def setup_logging() -> None:
    load_dotenv()
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def write_outputs(path: str, outputs: dict[str, str]) -> None:
    """Write outputs as a dotenv file for a GitLab ``artifacts:reports:dotenv``."""
    env_file = Path(path)
    env_file.parent.mkdir(parents=True, exist_ok=True)
    env_file.touch()
    for key, value in outputs.items():
        set_key(str(env_file), key, value, quote_mode="never")
