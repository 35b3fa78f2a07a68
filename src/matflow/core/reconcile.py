# src/matflow/core/reconcile.py
"""Schema reconciliation between a planned query and its target table.

Two-stage policy, applied to column names and then primary keys:
1. Default: overrides win; otherwise take what the query planner inferred.
2. Validate: the result must still agree with the query's actual shape.

Overrides never paper over an inconsistency. A column override of the wrong
length, an empty key, or a key naming an unknown column are ConfigErrors.
"""

from collections.abc import Sequence

import structlog

from matflow.contracts.errors import ConfigError
from matflow.contracts.schema import ResolvedSchema, TablePath, TargetTableSpec

logger = structlog.get_logger(__name__)


def reconcile_column_names(
    query_column_names: Sequence[str],
    column_name_override: Sequence[str] | None = None,
) -> tuple[str, ...]:
    """Final column names for the target table.

    Raises:
        ConfigError: If the override length differs from the query's.
    """
    if column_name_override is None:
        return tuple(query_column_names)
    if len(column_name_override) != len(query_column_names):
        raise ConfigError(
            f"Mismatched size of columnNames: override has {len(column_name_override)}, "
            f"query produces {len(query_column_names)} ({list(query_column_names)})"
        )
    return tuple(column_name_override)


def reconcile_primary_keys(
    column_names: Sequence[str],
    query_primary_key: Sequence[str] | None = None,
    primary_key_override: Sequence[str] | None = None,
) -> tuple[str, ...]:
    """Final primary key for the target table.

    Without an override the query's inferred key is used; a query that
    declares none is keyed by its first (final) column.

    Raises:
        ConfigError: If the key is empty or names a column not in column_names.
    """
    if primary_key_override is not None:
        keys = tuple(primary_key_override)
    elif query_primary_key:
        keys = tuple(query_primary_key)
    elif column_names:
        keys = (column_names[0],)
    else:
        keys = ()

    if not keys:
        raise ConfigError("PrimaryKeys can't be empty")
    known = set(column_names)
    unknown = [k for k in keys if k not in known]
    if unknown:
        raise ConfigError(f"PrimaryKeys must be contained by columnNames {list(column_names)}, unknown: {unknown}")
    return keys


def reconcile_target(
    path: TablePath,
    schema: ResolvedSchema,
    *,
    column_name_override: Sequence[str] | None = None,
    primary_key_override: Sequence[str] | None = None,
) -> TargetTableSpec:
    """Produce the validated TargetTableSpec for a planned query."""
    column_names = reconcile_column_names(schema.column_names, column_name_override)
    query_primary_key = schema.primary_key
    if query_primary_key and column_name_override is not None:
        # The planner names key columns by their query names; follow the renames
        renamed = dict(zip(schema.column_names, column_names, strict=True))
        query_primary_key = tuple(renamed.get(k, k) for k in query_primary_key)
    primary_keys = reconcile_primary_keys(column_names, query_primary_key, primary_key_override)
    logger.debug(
        "Reconciled target schema",
        target=str(path),
        columns=list(column_names),
        primary_keys=list(primary_keys),
        renamed=column_name_override is not None,
    )
    return TargetTableSpec(
        path=path,
        column_names=column_names,
        column_types=schema.column_types,
        primary_keys=primary_keys,
    )
