"""Tests for application wiring and logging setup."""

import logging

import pytest

from vigil.core.config import LoggingConfig, VigilConfig
from vigil.core.factory import build_agent, build_executor, build_store, shutdown
from vigil.core.log import level_from_name, setup_logging
from vigil.research.literature import LiteratureResearchExecutor
from vigil.research.mock import MockResearchExecutor
from vigil.scheduler.memory import InMemoryResearchJobStore
from vigil.scheduler.sqlite import SQLiteResearchJobStore


@pytest.mark.asyncio
async def test_build_memory_store():
    config = VigilConfig(store={"backend": "memory"})
    store = await build_store(config)
    assert isinstance(store, InMemoryResearchJobStore)


@pytest.mark.asyncio
async def test_build_sqlite_store(tmp_path):
    config = VigilConfig(store={"backend": "sqlite", "db_path": str(tmp_path / "db" / "r.db")})
    store = await build_store(config)
    assert isinstance(store, SQLiteResearchJobStore)
    assert (tmp_path / "db" / "r.db").exists()
    await store.close()


def test_build_executor():
    assert isinstance(build_executor(VigilConfig(executor={"provider": "mock"})), MockResearchExecutor)
    executor = build_executor(VigilConfig(executor={"pubmed_base_url": "https://pubmed.test"}))
    assert isinstance(executor, LiteratureResearchExecutor)
    assert [s.source_id for s in executor.sources] == ["wikipedia", "semantic-scholar", "pubmed"]


@pytest.mark.asyncio
async def test_build_agent_uses_autonomy_settings():
    config = VigilConfig(
        store={"backend": "memory"},
        executor={"provider": "mock"},
        autonomy={"max_concurrent_runs": 3},
    )
    agent = await build_agent(config)
    assert agent.max_concurrent_runs == 3
    assert isinstance(agent.store, InMemoryResearchJobStore)
    await shutdown(agent)


@pytest.mark.asyncio
async def test_build_agent_keeps_supplied_collaborators(store, executor):
    agent = await build_agent(VigilConfig(), store=store, executor=executor)
    assert agent.store is store
    assert agent.executor is executor


def _close(logger):
    for handler in logger.handlers:
        handler.close()
    logger.handlers = []


def test_setup_logging_writes_file(tmp_path):
    logger = setup_logging(LoggingConfig(log_dir=str(tmp_path / "logs")))
    try:
        logging.getLogger("vigil.scheduler.agent").info("hello from the agent")
        for handler in logger.handlers:
            handler.flush()
        files = list((tmp_path / "logs").glob("vigil_*.log"))
        assert len(files) == 1
        assert "hello from the agent" in files[0].read_text()
    finally:
        _close(logger)


def test_level_from_name():
    assert level_from_name("debug") == logging.DEBUG
    assert level_from_name("INFO") == logging.INFO
    assert level_from_name("nonsense") == logging.WARNING


def test_setup_logging_levels(tmp_path):
    config = LoggingConfig(
        level="ERROR", file_level="INFO", library_level="ERROR", log_dir=str(tmp_path),
    )
    logger = setup_logging(config)
    try:
        console, file_handler = logger.handlers
        assert console.level == logging.ERROR
        assert file_handler.level == logging.INFO
        assert logging.getLogger("httpx").level == logging.ERROR

        logging.getLogger("vigil.scheduler.agent").debug("too fine for the file")
        logging.getLogger("vigil.scheduler.agent").info("run completed")
        file_handler.flush()
        text = next(tmp_path.glob("vigil_*.log")).read_text()
        assert "run completed" in text
        assert "too fine for the file" not in text
    finally:
        _close(logger)


def test_setup_logging_file_never_quieter_than_console(tmp_path):
    config = LoggingConfig(level="WARNING", file_level="ERROR", log_dir=str(tmp_path))
    logger = setup_logging(config, verbose=True)
    try:
        console, file_handler = logger.handlers
        assert console.level == logging.DEBUG
        assert file_handler.level == logging.DEBUG
    finally:
        _close(logger)
