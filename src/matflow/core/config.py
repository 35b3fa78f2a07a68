# src/matflow/core/config.py
"""
Configuration schema and loading for matflow pipelines.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction.

Two surfaces share these models:
- PipelineBuilder assembles EnvironmentSettings from its setters
- load_settings() reads a YAML file into PipelineSettings for the CLI
"""

import re
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

# Checkpointing defaults. The pause and concurrency limits guarantee
# non-overlapping snapshots at the cost of refresh latency.
DEFAULT_CHECKPOINT_INTERVAL_MS = 1000
MIN_PAUSE_BETWEEN_CHECKPOINTS_MS = 500
MAX_CONCURRENT_CHECKPOINTS = 1

DEFAULT_PARALLELISM = 1
DEFAULT_REST_PORT = 18083
DEFAULT_ENGINE = "refresh"


class CheckpointSettings(BaseModel):
    """Checkpoint configuration of the streaming environment.

    Only exactly-once checkpointing is supported.
    """

    model_config = {"frozen": True}

    interval_ms: int = Field(
        default=DEFAULT_CHECKPOINT_INTERVAL_MS,
        gt=0,
        description="Checkpoint interval in milliseconds; determines refresh rate",
    )
    mode: Literal["exactly_once"] = Field(default="exactly_once", description="Checkpointing mode")
    min_pause_between_ms: int = Field(
        default=MIN_PAUSE_BETWEEN_CHECKPOINTS_MS,
        ge=MIN_PAUSE_BETWEEN_CHECKPOINTS_MS,
        description="Minimum pause between two checkpoints",
    )
    max_concurrent: Literal[1] = Field(
        default=MAX_CONCURRENT_CHECKPOINTS,
        description="Maximum checkpoints in flight",
    )


class ExecutionSettings(BaseModel):
    """Execution-engine settings supplied by the caller.

    Example YAML:
        execution:
          engine: refresh
          mode: streaming
          remote_host: flink-jobmanager.internal
          options:
            max_refreshes: "10"
    """

    model_config = {"frozen": True}

    engine: str = Field(default=DEFAULT_ENGINE, description="Registered stream engine name")
    mode: Literal["streaming", "batch"] = Field(default="streaming", description="Execution mode")
    remote_host: str | None = Field(default=None, description="Remote cluster host, None runs locally")
    rest_port: int = Field(default=DEFAULT_REST_PORT, gt=0, lt=65536, description="REST/web UI port")
    options: dict[str, str] = Field(default_factory=dict, description="Engine-specific options")

    @property
    def is_streaming_mode(self) -> bool:
        return self.mode == "streaming"


class EnvironmentSettings(BaseModel):
    """Fully assembled execution environment configuration.

    Built by PipelineBuilder from parallelism, checkpoint interval and the
    caller's ExecutionSettings.
    """

    model_config = {"frozen": True}

    parallelism: int = Field(default=DEFAULT_PARALLELISM, gt=0)
    checkpoint: CheckpointSettings = Field(default_factory=CheckpointSettings)
    execution: ExecutionSettings = Field(default_factory=ExecutionSettings)


class StoreSettings(BaseModel):
    """Relational store connection configuration."""

    model_config = {"frozen": True}

    # NOTE: str rather than Path - Path mangles DSNs like "mysql://user@host/db"
    url: str = Field(description="SQLAlchemy database URL")
    connect_args: dict[str, Any] = Field(default_factory=dict, description="Driver connect() arguments")


class TargetSettings(BaseModel):
    """Destination table; the database defaults to the default database."""

    model_config = {"frozen": True}

    database: str | None = None
    table: str = Field(description="Table name, or 'database.table' when database is not set")


class CoordinatorSettings(BaseModel):
    """Consistency coordinator selection."""

    model_config = {"frozen": True}

    provider: str = Field(default="local", description="Registered coordinator factory name")
    options: dict[str, str] = Field(default_factory=dict)


class PipelineSettings(BaseModel):
    """Top-level matflow configuration for a single materialized view."""

    model_config = {"frozen": True}

    store: StoreSettings
    query: str = Field(min_length=1, description="Declarative query to materialize")
    target: TargetSettings
    default_database: str | None = None
    column_names: list[str] | None = Field(default=None, description="Override query column names")
    primary_keys: list[str] | None = Field(default=None, description="Override inferred primary key")
    parallelism: int = Field(default=DEFAULT_PARALLELISM, gt=0)
    checkpoint_interval_ms: int = Field(default=DEFAULT_CHECKPOINT_INTERVAL_MS, gt=0)
    drop_old_table: bool = False
    force_new_table: bool = True
    validate_existing_table: bool = False
    execution: ExecutionSettings = Field(default_factory=ExecutionSettings)
    coordinator: CoordinatorSettings | None = None

    @field_validator("column_names", "primary_keys")
    @classmethod
    def validate_names(cls, v: list[str] | None) -> list[str] | None:
        if v is None:
            return v
        blank = [i for i, name in enumerate(v) if not name.strip()]
        if blank:
            raise ValueError(f"names must be non-empty, blank at positions {blank}")
        return v


# ${VAR} or ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")


def _expand_env_vars(config: dict[str, Any]) -> dict[str, Any]:
    """Recursively expand ${VAR} and ${VAR:-default} patterns in config values."""
    import os

    def _expand_string(value: str) -> str:
        def replacer(match: re.Match[str]) -> str:
            env_value = os.environ.get(match.group(1))
            if env_value is not None:
                return env_value
            if match.group(2) is not None:
                return match.group(2)
            # Unresolved placeholders are left for validation to reject
            return match.group(0)

        return _ENV_VAR_PATTERN.sub(replacer, value)

    def _expand_value(value: Any) -> Any:
        if isinstance(value, str):
            return _expand_string(value)
        elif isinstance(value, dict):
            return {k: _expand_value(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [_expand_value(item) for item in value]
        else:
            return value

    return {k: _expand_value(v) for k, v in config.items()}


def load_settings(config_path: Path) -> PipelineSettings:
    """Load settings from YAML file with environment variable overrides.

    Precedence:
    1. Environment variables (MATFLOW_*) - highest priority
    2. Config file
    3. Defaults from the Pydantic schema

    Nested keys use double underscores: MATFLOW_STORE__URL.

    Raises:
        ValidationError: If configuration fails Pydantic validation
        FileNotFoundError: If config file doesn't exist
    """
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="MATFLOW",
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    # Dynaconf returns uppercase top-level keys
    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = {k.lower(): v for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys}
    raw_config = _expand_env_vars(raw_config)

    return PipelineSettings(**raw_config)
