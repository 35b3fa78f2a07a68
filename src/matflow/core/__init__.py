# src/matflow/core/__init__.py
"""Core infrastructure: Configuration, Logging, Store access, Reconciliation."""

from matflow.core.config import (
    CheckpointSettings,
    CoordinatorSettings,
    EnvironmentSettings,
    ExecutionSettings,
    PipelineSettings,
    StoreSettings,
    TargetSettings,
    load_settings,
)
from matflow.core.logging import configure_logging, get_logger
from matflow.core.reconcile import reconcile_column_names, reconcile_primary_keys, reconcile_target
from matflow.core.store import TableGateway

__all__ = [
    "CheckpointSettings",
    "CoordinatorSettings",
    "EnvironmentSettings",
    "ExecutionSettings",
    "PipelineSettings",
    "StoreSettings",
    "TableGateway",
    "TargetSettings",
    "configure_logging",
    "get_logger",
    "load_settings",
    "reconcile_column_names",
    "reconcile_primary_keys",
    "reconcile_target",
]
