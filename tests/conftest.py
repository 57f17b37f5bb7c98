"""Shared test fixtures for Vigil."""

import pytest

from vigil.core.config import VigilConfig
from vigil.research.mock import MockResearchExecutor
from vigil.scheduler.agent import ResearchAutonomyAgent
from vigil.scheduler.memory import InMemoryResearchJobStore


@pytest.fixture
def config():
    """Create a default config without loading from disk."""
    return VigilConfig()


@pytest.fixture
def store():
    """Create a fresh in-memory job store."""
    return InMemoryResearchJobStore()


@pytest.fixture
def executor():
    """Create a mock research executor."""
    return MockResearchExecutor()


@pytest.fixture
def agent(store, executor):
    """Create an agent over the in-memory store and mock executor."""
    return ResearchAutonomyAgent(store, executor)
