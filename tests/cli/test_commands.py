"""Tests for CLI commands."""

import asyncio
import logging

import pytest
from typer.testing import CliRunner

from vigil.cli.main import app
from vigil.scheduler.job import JobDefinition
from vigil.scheduler.sqlite import SQLiteResearchJobStore


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def workspace(tmp_path, monkeypatch):
    """Point every path the CLI touches into tmp_path and use the mock executor."""
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("VIGIL_STORE_DB_PATH", str(tmp_path / "research.db"))
    monkeypatch.setenv("VIGIL_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("VIGIL_EXECUTOR_PROVIDER", "mock")
    yield tmp_path

    # Handlers hold the runner's captured streams
    logger = logging.getLogger("vigil")
    for handler in logger.handlers:
        handler.close()
    logger.handlers = []


def _create_job(db_path, **kwargs):
    async def _create():
        store = SQLiteResearchJobStore(db_path)
        try:
            return await store.create_job(JobDefinition(**kwargs))
        finally:
            await store.close()

    return asyncio.run(_create())


def test_version(runner):
    """vigil version shows version."""
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert "0.1.0" in result.stdout


def test_jobs_empty(runner):
    result = runner.invoke(app, ["jobs"])
    assert result.exit_code == 0
    assert "No research jobs" in result.stdout


def test_add_job(runner, workspace):
    result = runner.invoke(app, ["add", "Fibromyalgia", "--schedule", "interval:60"])
    assert result.exit_code == 0
    assert "Created job" in result.stdout
    assert "every 1h" in result.stdout


def test_add_rejects_bad_schedule(runner):
    result = runner.invoke(app, ["add", "Fibromyalgia", "--schedule", "daily"])
    assert result.exit_code == 1
    assert "Unsupported schedule" in result.stdout


def test_seed_is_idempotent(runner):
    first = runner.invoke(app, ["seed"])
    assert first.exit_code == 0
    assert "9 queries" in first.stdout
    assert "9 created" in first.stdout

    second = runner.invoke(app, ["seed"])
    assert second.exit_code == 0
    assert "0 created" in second.stdout
    assert "9 already present" in second.stdout


def test_seed_with_queries(runner):
    result = runner.invoke(app, ["seed", "-q", "Long COVID", "-q", "POTS", "--interval", "60"])
    assert result.exit_code == 0
    assert "2 queries" in result.stdout


def test_trigger_and_show(runner, workspace):
    job = _create_job(workspace / "research.db", query="Morgellons disease")

    result = runner.invoke(app, ["trigger", job.id])
    assert result.exit_code == 0
    assert ": completed" in result.stdout

    shown = runner.invoke(app, ["show", job.id, "--runs"])
    assert shown.exit_code == 0
    assert "Morgellons disease" in shown.stdout
    assert "1 run(s)" in shown.stdout


def test_trigger_unknown_job(runner):
    result = runner.invoke(app, ["trigger", "ghost"])
    assert result.exit_code == 1
    assert "not found" in result.stdout


def test_show_unknown_job(runner):
    result = runner.invoke(app, ["show", "ghost"])
    assert result.exit_code == 1
    assert "not found" in result.stdout


def test_run_due(runner, workspace):
    _create_job(workspace / "research.db", query="Fibromyalgia", schedule="interval:60")

    now = runner.invoke(app, ["run-due"])
    assert now.exit_code == 0
    assert "Executed 0 due job(s)" in now.stdout

    later = runner.invoke(app, ["run-due", "--at", "2099-01-01T00:00:00+00:00"])
    assert later.exit_code == 0
    assert "Executed 1 due job(s)" in later.stdout


def test_run_due_bad_timestamp(runner):
    result = runner.invoke(app, ["run-due", "--at", "yesterday"])
    assert result.exit_code == 1
    assert "Invalid --at" in result.stdout
