"""
Vigil Configuration - loads and merges config from multiple sources.

Precedence (highest to lowest):
1. Explicit overrides (passed in code)
2. Environment variables (VIGIL_*)
3. Project config (./vigil.toml)
4. User config (~/.vigil/config.toml)
5. Defaults (hardcoded)

Every field can be set from the environment as VIGIL_<SECTION>_<FIELD>,
e.g. VIGIL_STORE_DB_PATH → store.db_path. A few short aliases exist for
the knobs operators reach for most (see ENV_ALIASES); the full name wins
when both are set. Values are strings and pydantic coerces them.
"""

from __future__ import annotations

import logging
import os
import re
import tomllib
from datetime import timedelta
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError, field_validator

from vigil.core.errors import ConfigError

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Config Sub-Models
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class AutonomyConfig(BaseModel):
    """Scheduler behaviour."""

    max_concurrent_runs: int = 1
    seed_interval_minutes: int = 24 * 60
    executor_timeout_seconds: float | None = None
    stale_run_after_minutes: float | None = None  # None = never reclaim

    @property
    def executor_timeout(self) -> float | None:
        return self.executor_timeout_seconds

    @property
    def stale_run_after(self) -> timedelta | None:
        if self.stale_run_after_minutes is None:
            return None
        return timedelta(minutes=self.stale_run_after_minutes)


class StoreConfig(BaseModel):
    """Job/run persistence."""

    backend: Literal["memory", "sqlite"] = "sqlite"
    db_path: str = "~/.vigil/research.db"


class ExecutorConfig(BaseModel):
    """Research executor configuration."""

    provider: Literal["literature", "mock"] = "literature"
    wikipedia_base_url: str = "https://en.wikipedia.org/api/rest_v1"
    semantic_scholar_base_url: str = "https://api.semanticscholar.org/graph/v1"
    pubmed_base_url: str = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils"
    timeout: float = 20.0
    user_agent: str = "VigilResearchAgent/0.1"
    summary_base_url: str = "http://localhost:11434"
    summary_model: str = ""  # empty = no AI summary


class ApiConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "127.0.0.1"
    port: int = 8000


class LoggingConfig(BaseModel):
    """
    Log output configuration.

    level goes to the console, file_level to the dated log file. The
    file never records less than the console shows. library_level caps
    the chatter from httpx, httpcore and aiosqlite.
    """

    level: str = "WARNING"
    file_level: str = "DEBUG"
    library_level: str = "WARNING"
    log_dir: str = "~/.vigil/logs"

    @field_validator("level", "file_level", "library_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        name = value.strip().upper()
        if not isinstance(logging.getLevelName(name), int):
            raise ValueError(f"unknown log level {value!r}")
        return name


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Main Config
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class VigilConfig(BaseModel):
    """Root configuration for Vigil."""

    autonomy: AutonomyConfig = Field(default_factory=AutonomyConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    executor: ExecutorConfig = Field(default_factory=ExecutorConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @staticmethod
    def load(
        overrides: dict[str, Any] | None = None,
        project_path: Path | None = None,
        user_path: Path | None = None,
    ) -> VigilConfig:
        """
        Load configuration from all sources and merge.

        Precedence: overrides > env vars > project toml > user toml > defaults
        """
        merged: dict[str, Any] = {}

        # Layer 1: User config (~/.vigil/config.toml)
        user_config_path = user_path or Path.home() / ".vigil" / "config.toml"
        if user_config_path.exists():
            _deep_merge(merged, _load_toml(user_config_path))

        # Layer 2: Project config (./vigil.toml)
        project_config_path = project_path or Path.cwd() / "vigil.toml"
        if project_config_path.exists():
            _deep_merge(merged, _load_toml(project_config_path))

        # Layer 3: Environment variables
        _deep_merge(merged, _load_from_env())

        # Layer 4: Explicit overrides
        if overrides:
            _deep_merge(merged, overrides)

        _substitute_env_vars(merged)

        try:
            return VigilConfig(**merged)
        except (ValidationError, TypeError) as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    def get_db_path(self) -> Path:
        """Resolved path of the SQLite database."""
        return Path(self.store.db_path).expanduser()

    def get_log_dir(self) -> Path:
        return Path(self.logging.log_dir).expanduser()


# Short names kept for the settings people export most often
ENV_ALIASES: dict[str, tuple[str, str]] = {
    "VIGIL_MAX_CONCURRENT_RUNS": ("autonomy", "max_concurrent_runs"),
    "VIGIL_SEED_INTERVAL_MINUTES": ("autonomy", "seed_interval_minutes"),
    "VIGIL_EXECUTOR_TIMEOUT_SECONDS": ("autonomy", "executor_timeout_seconds"),
    "VIGIL_STALE_RUN_AFTER_MINUTES": ("autonomy", "stale_run_after_minutes"),
    "VIGIL_SUMMARY_MODEL": ("executor", "summary_model"),
    "VIGIL_SUMMARY_BASE_URL": ("executor", "summary_base_url"),
    "VIGIL_LOG_LEVEL": ("logging", "level"),
    "VIGIL_LOG_DIR": ("logging", "log_dir"),
}


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Internal Helpers
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def _load_toml(path: Path) -> dict[str, Any]:
    """Load a TOML file."""
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Failed to load config from {path}: {e}") from e


def env_var_names() -> dict[str, tuple[str, str]]:
    """Every recognised VIGIL_* variable, aliases first."""
    names = dict(ENV_ALIASES)
    for section, field in VigilConfig.model_fields.items():
        model = field.annotation
        for key in model.model_fields:
            names[f"VIGIL_{section.upper()}_{key.upper()}"] = (section, key)
    return names


def _load_from_env() -> dict[str, Any]:
    """Load configuration from VIGIL_* environment variables."""
    result: dict[str, Any] = {}
    for env_var, (section, key) in env_var_names().items():
        value = os.environ.get(env_var)
        if value is not None:
            result.setdefault(section, {})[key] = value
    return result


def _deep_merge(base: dict, override: dict) -> None:
    """Deep merge override into base (mutates base)."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value


_ENV_REF = re.compile(r"\$\{([^}]+)\}")


def _substitute_env_vars(data: dict) -> None:
    """Replace ${ENV_VAR} in string values; unset variables become ''."""
    for key, value in data.items():
        if isinstance(value, dict):
            _substitute_env_vars(value)
        elif isinstance(value, str):
            data[key] = _ENV_REF.sub(lambda m: os.environ.get(m.group(1), ""), value)
