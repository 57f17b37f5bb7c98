"""
Application wiring - build one store, one executor and one agent from
config at startup and hand them to whatever needs them (HTTP app, CLI,
tests). Nothing here is cached at module level.
"""

from __future__ import annotations

import logging

from vigil.core.config import VigilConfig
from vigil.core.errors import ConfigError
from vigil.research.base import ResearchExecutor
from vigil.research.mock import MockResearchExecutor
from vigil.research.literature import LiteratureResearchExecutor
from vigil.scheduler.agent import ResearchAutonomyAgent
from vigil.scheduler.memory import InMemoryResearchJobStore
from vigil.scheduler.sqlite import SQLiteResearchJobStore
from vigil.scheduler.store import ResearchJobStore

logger = logging.getLogger(__name__)


async def build_store(config: VigilConfig) -> ResearchJobStore:
    """Create and initialise the configured store backend."""
    backend = config.store.backend
    if backend == "memory":
        logger.info("Using in-memory job store (not shared between processes)")
        return InMemoryResearchJobStore()
    if backend == "sqlite":
        store = SQLiteResearchJobStore(config.get_db_path())
        await store.initialize()
        logger.info(f"Using SQLite job store at {config.get_db_path()}")
        return store
    raise ConfigError(f"Unknown store backend: {backend!r}")


def build_executor(config: VigilConfig) -> ResearchExecutor:
    """Create the configured research executor."""
    provider = config.executor.provider
    if provider == "mock":
        return MockResearchExecutor()
    if provider == "literature":
        return LiteratureResearchExecutor(
            wikipedia_base_url=config.executor.wikipedia_base_url,
            semantic_scholar_base_url=config.executor.semantic_scholar_base_url,
            pubmed_base_url=config.executor.pubmed_base_url,
            timeout=config.executor.timeout,
            user_agent=config.executor.user_agent,
            summary_base_url=config.executor.summary_base_url,
            summary_model=config.executor.summary_model,
        )
    raise ConfigError(f"Unknown executor provider: {provider!r}")


async def build_agent(
    config: VigilConfig,
    store: ResearchJobStore | None = None,
    executor: ResearchExecutor | None = None,
) -> ResearchAutonomyAgent:
    """Build the agent, creating any collaborator not supplied."""
    store = store or await build_store(config)
    executor = executor or build_executor(config)
    return ResearchAutonomyAgent.from_config(store, executor, config.autonomy)


async def shutdown(agent: ResearchAutonomyAgent) -> None:
    """Close the agent's executor and store."""
    await agent.executor.close()
    await agent.store.close()
