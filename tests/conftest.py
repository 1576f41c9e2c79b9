"""
Shared fixtures for the IdLE engine tests.
"""

from pathlib import Path

import pytest

from idle_engine.engine import Executor, Planner

from .helpers import TEST_PACK, ScriptedProvider

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture
def fixtures_dir():
    """Directory holding workflow, request and golden export fixtures."""
    return FIXTURES


@pytest.fixture
def planner():
    return Planner([TEST_PACK])


@pytest.fixture
def sleeps():
    """Backoff delays requested by the executor, in seconds."""
    return []


@pytest.fixture
def executor(sleeps):
    """Executor whose retry backoff is recorded instead of slept."""
    return Executor([TEST_PACK], sleep=sleeps.append)


@pytest.fixture
def script():
    return ScriptedProvider()
