"""Shared fixtures."""

import pytest

from steward import logging as steward_logging
from steward.logging import LogConfig


@pytest.fixture(autouse=True)
def log_dir(tmp_path):
    """Keep JSONL logs out of the home directory."""
    path = tmp_path / "logs"
    steward_logging.set_config(LogConfig(log_dir=path))
    return path
