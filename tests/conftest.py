"""Shared fixtures for shexec tests."""

import io
import sys
from pathlib import Path

import pytest

from shexec import JobTable, Shell


@pytest.fixture
def list_fds_cmd() -> tuple[str, str]:
    """Argv of a helper that prints its own open fds as JSON."""
    return (sys.executable, str(Path(__file__).parent / "_list_fds.py"))


@pytest.fixture
def shell() -> Shell:
    """Shell with a small job table and captured output streams."""
    return Shell(jobs=JobTable(capacity=4), stdout=io.StringIO(), stderr=io.StringIO())
