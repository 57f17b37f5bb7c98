"""Tests for the Config system."""

from datetime import timedelta

import pytest

from vigil.core.config import (
    LoggingConfig,
    VigilConfig,
    _deep_merge,
    _substitute_env_vars,
    env_var_names,
)
from vigil.core.errors import ConfigError


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    """Keep stray config files and VIGIL_* vars out of these tests."""
    monkeypatch.chdir(tmp_path)
    for name in env_var_names():
        monkeypatch.delenv(name, raising=False)


def test_default_config():
    """Default config has sensible values."""
    config = VigilConfig()

    assert config.autonomy.max_concurrent_runs == 1
    assert config.autonomy.seed_interval_minutes == 1440
    assert config.autonomy.executor_timeout is None
    assert config.autonomy.stale_run_after is None
    assert config.store.backend == "sqlite"
    assert config.executor.provider == "literature"
    assert config.api.port == 8000
    assert config.logging.level == "WARNING"


def test_load_with_overrides(tmp_path):
    """Explicit overrides take highest precedence."""
    config = VigilConfig.load(
        overrides={
            "autonomy": {"max_concurrent_runs": 3, "stale_run_after_minutes": 45},
            "store": {"backend": "memory"},
        },
        user_path=tmp_path / "missing.toml",
    )

    assert config.autonomy.max_concurrent_runs == 3
    assert config.autonomy.stale_run_after == timedelta(minutes=45)
    assert config.store.backend == "memory"
    # Defaults still work for non-overridden values
    assert config.autonomy.seed_interval_minutes == 1440


def test_env_var_loading(tmp_path, monkeypatch):
    """VIGIL_* environment variables are loaded."""
    monkeypatch.setenv("VIGIL_MAX_CONCURRENT_RUNS", "2")
    monkeypatch.setenv("VIGIL_STORE_BACKEND", "memory")
    monkeypatch.setenv("VIGIL_EXECUTOR_PROVIDER", "mock")

    config = VigilConfig.load(user_path=tmp_path / "missing.toml")

    assert config.autonomy.max_concurrent_runs == 2
    assert config.store.backend == "memory"
    assert config.executor.provider == "mock"


def test_toml_layers(tmp_path, monkeypatch):
    """Project toml beats user toml, env beats both."""
    user = tmp_path / "user.toml"
    user.write_text('[store]\nbackend = "memory"\n[api]\nport = 9000\n')
    project = tmp_path / "vigil.toml"
    project.write_text("[api]\nport = 9100\n")
    monkeypatch.setenv("VIGIL_MAX_CONCURRENT_RUNS", "4")

    config = VigilConfig.load(user_path=user, project_path=project)

    assert config.store.backend == "memory"
    assert config.api.port == 9100
    assert config.autonomy.max_concurrent_runs == 4


def test_invalid_config_raises(tmp_path):
    with pytest.raises(ConfigError):
        VigilConfig.load(
            overrides={"store": {"backend": "postgres"}},
            user_path=tmp_path / "missing.toml",
        )


def test_broken_toml_raises(tmp_path):
    broken = tmp_path / "vigil.toml"
    broken.write_text("[store\n")
    with pytest.raises(ConfigError):
        VigilConfig.load(project_path=broken, user_path=tmp_path / "missing.toml")


def test_env_var_substitution(monkeypatch):
    """${VAR} in config values gets replaced with env var values."""
    monkeypatch.setenv("MY_DB_DIR", "/data")
    data = {"store": {"db_path": "${MY_DB_DIR}/research.db"}}

    _substitute_env_vars(data)

    assert data["store"]["db_path"] == "/data/research.db"


def test_deep_merge():
    base = {"a": 1, "b": {"c": 2, "d": 3}, "e": 5}
    override = {"b": {"c": 20, "f": 6}, "g": 7}

    _deep_merge(base, override)

    assert base == {"a": 1, "b": {"c": 20, "d": 3, "f": 6}, "e": 5, "g": 7}


def test_paths_expand_home():
    config = VigilConfig()
    assert "~" not in str(config.get_db_path())
    assert "~" not in str(config.get_log_dir())


def test_every_field_has_an_env_var(tmp_path, monkeypatch):
    """VIGIL_<SECTION>_<FIELD> reaches any field, and pydantic coerces the string."""
    monkeypatch.setenv("VIGIL_AUTONOMY_EXECUTOR_TIMEOUT_SECONDS", "30.5")
    monkeypatch.setenv("VIGIL_EXECUTOR_PUBMED_BASE_URL", "https://pubmed.test/eutils")
    monkeypatch.setenv("VIGIL_LOGGING_FILE_LEVEL", "info")
    monkeypatch.setenv("VIGIL_API_PORT", "9001")

    config = VigilConfig.load(user_path=tmp_path / "missing.toml")

    assert config.autonomy.executor_timeout == 30.5
    assert config.executor.pubmed_base_url == "https://pubmed.test/eutils"
    assert config.logging.file_level == "INFO"
    assert config.api.port == 9001


def test_full_env_name_beats_alias(tmp_path, monkeypatch):
    monkeypatch.setenv("VIGIL_LOG_LEVEL", "error")
    monkeypatch.setenv("VIGIL_LOGGING_LEVEL", "debug")
    assert VigilConfig.load(user_path=tmp_path / "missing.toml").logging.level == "DEBUG"


def test_bad_env_value_raises(tmp_path, monkeypatch):
    monkeypatch.setenv("VIGIL_MAX_CONCURRENT_RUNS", "several")
    with pytest.raises(ConfigError):
        VigilConfig.load(user_path=tmp_path / "missing.toml")


def test_unknown_log_level_rejected(tmp_path):
    with pytest.raises(ConfigError):
        VigilConfig.load(
            overrides={"logging": {"level": "chatty"}},
            user_path=tmp_path / "missing.toml",
        )
    assert LoggingConfig(level=" info ").level == "INFO"


def test_env_var_substitution_unset_and_repeated(monkeypatch):
    monkeypatch.setenv("MODEL", "llama3.1")
    monkeypatch.delenv("VIGIL_TEST_UNSET", raising=False)
    data = {"executor": {"summary_model": "${MODEL}-${MODEL}", "user_agent": "x${VIGIL_TEST_UNSET}y"}}

    _substitute_env_vars(data)

    assert data["executor"] == {"summary_model": "llama3.1-llama3.1", "user_agent": "xy"}
