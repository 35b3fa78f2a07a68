# src/matflow/contracts/__init__.py
"""Shared contracts for cross-boundary data types.

This package is a LEAF MODULE with no outbound dependencies to core/engine.
Settings classes (EnvironmentSettings, PipelineSettings) are NOT re-exported
here - import them from matflow.core.config.

Import patterns:
    from matflow.contracts import ResolvedSchema, TargetTableSpec, ConfigError
    from matflow.core.config import PipelineSettings
"""

from matflow.contracts.coordinator import (
    DEFAULT_PROVIDER,
    HOST_OPTION_KEY,
    PROVIDER_OPTION_KEY,
    CoordinatorFactory,
    CoordinatorProtocol,
)
from matflow.contracts.engine import (
    CATALOG_NAME,
    CatalogSpec,
    ClosableEnvironmentProtocol,
    JobExecutionResult,
    JobHandleProtocol,
    PlannedQueryProtocol,
    StoreConfig,
    StreamEngineProtocol,
    StreamEnvironmentProtocol,
)
from matflow.contracts.errors import (
    ConfigError,
    CoordinatorError,
    MatflowError,
    PipelineError,
    QueryError,
    SchemaConflictError,
    StoreError,
)
from matflow.contracts.schema import Column, ResolvedSchema, TablePath, TargetTableSpec

__all__ = [
    "CATALOG_NAME",
    "DEFAULT_PROVIDER",
    "HOST_OPTION_KEY",
    "PROVIDER_OPTION_KEY",
    "CatalogSpec",
    "ClosableEnvironmentProtocol",
    "Column",
    "ConfigError",
    "CoordinatorError",
    "CoordinatorFactory",
    "CoordinatorProtocol",
    "JobExecutionResult",
    "JobHandleProtocol",
    "MatflowError",
    "PipelineError",
    "PlannedQueryProtocol",
    "QueryError",
    "ResolvedSchema",
    "SchemaConflictError",
    "StoreConfig",
    "StoreError",
    "StreamEngineProtocol",
    "StreamEnvironmentProtocol",
    "TablePath",
    "TargetTableSpec",
]
