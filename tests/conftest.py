"""
Pytest configuration and fixtures for macstrap tests.
"""

import sys
import tempfile
from pathlib import Path

import pytest

from macstrap.observers import BufferObserver
from macstrap.settings import MacstrapSettings


@pytest.fixture
def temp_dir():
    """Provide a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def observer():
    """Collect everything a run writes."""
    return BufferObserver()


@pytest.fixture
def settings(temp_dir):
    """Settings that run Python entry points with the test interpreter."""
    workspaces = temp_dir / "workspaces"
    workspaces.mkdir()
    return MacstrapSettings(
        shell=sys.executable,
        entry_point="bootstrap.py",
        workspace_root=workspaces,
        exit_grace_seconds=2.0,
        terminate_grace_seconds=1.0,
    )

