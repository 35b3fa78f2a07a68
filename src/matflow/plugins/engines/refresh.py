# src/matflow/plugins/engines/refresh.py
"""Periodic full-refresh stream engine.

Runs the declarative query directly against the store through SQLAlchemy
and keeps the target table equal to its result by refreshing it once per
checkpoint interval. Each refresh is one transaction:

    DELETE FROM <target>;
    INSERT INTO <target> SELECT * FROM (<query>) AS src;

so readers only ever observe complete snapshots. This trades incremental
computation for zero external infrastructure, which makes it the default
engine for development and for stores without a streaming connector.

Options (ExecutionSettings.options):
    max_refreshes: stop after N refreshes (default: run until cancelled)

Column types are inferred from a sample row; columns whose sample is NULL
(or queries returning no rows) are typed STRING. Queries are not analyzed
for keys, so the reconciler keys the target by its first column unless
primary keys are configured.

Queries run on the catalog's store connection: unqualified names resolve in
the catalog's default database, the only one use_database() accepts. close()
disposes the per-catalog engines.
"""

import datetime
import threading
import time
import uuid
from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from matflow.contracts import (
    CatalogSpec,
    ConfigError,
    JobExecutionResult,
    QueryError,
    ResolvedSchema,
)
from matflow.core.config import EnvironmentSettings
from matflow.plugins.hookspecs import hookimpl

logger = structlog.get_logger(__name__)

MAX_REFRESHES_OPTION = "max_refreshes"

# Checked in order; bool before int because bool is an int subclass.
_SAMPLE_TYPES: tuple[tuple[type, str], ...] = (
    (bool, "BOOLEAN"),
    (int, "BIGINT"),
    (float, "DOUBLE"),
    (Decimal, "DECIMAL(38, 18)"),
    (datetime.datetime, "TIMESTAMP(6)"),
    (datetime.date, "DATE"),
    (datetime.time, "TIME"),
    (bytes, "BYTES"),
    (str, "STRING"),
)


def infer_logical_type(sample: Any) -> str:
    """Logical type for a sampled value; STRING when unknown or NULL."""
    for python_type, logical in _SAMPLE_TYPES:
        if isinstance(sample, python_type):
            return logical
    return "STRING"


def _strip_statement(query: str) -> str:
    stripped = query.strip().rstrip(";").strip()
    if not stripped:
        raise QueryError("Query is empty")
    return stripped


class RefreshJob:
    """A running refresh loop. Blocks in await_completion()."""

    def __init__(
        self,
        engine: Engine,
        query: str,
        target_path: str,
        *,
        interval_seconds: float,
        max_refreshes: int | None,
    ) -> None:
        self.job_id = uuid.uuid4().hex
        self._engine = engine
        self._delete = text(f"DELETE FROM {target_path}")
        self._insert = text(f"INSERT INTO {target_path} SELECT * FROM ({query}) AS matflow_src")
        self._target_path = target_path
        self._interval_seconds = interval_seconds
        self._max_refreshes = max_refreshes
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    def refresh(self) -> int:
        """Replace the target's contents with the query result atomically."""
        with self._engine.begin() as conn:
            conn.execute(self._delete)
            result = conn.execute(self._insert)
        return result.rowcount

    def await_completion(self) -> JobExecutionResult:
        start = time.perf_counter()
        refreshes = 0
        rows_written = 0
        while not self._cancelled.is_set():
            rows_written = self.refresh()
            refreshes += 1
            logger.debug("Refreshed target", job_id=self.job_id, target=self._target_path, rows=rows_written)
            if self._max_refreshes is not None and refreshes >= self._max_refreshes:
                break
            self._cancelled.wait(self._interval_seconds)
        return JobExecutionResult(
            job_id=self.job_id,
            net_runtime_ms=int((time.perf_counter() - start) * 1000),
            accumulators={"refreshes": refreshes, "rows_written": rows_written},
        )


class RefreshQuery:
    """Planned query bound to its environment."""

    def __init__(self, environment: "RefreshEnvironment", query: str, resolved_schema: ResolvedSchema) -> None:
        self._environment = environment
        self._query = query
        self.resolved_schema = resolved_schema

    def execute_insert(self, target_path: str) -> RefreshJob:
        return self._environment.submit(self._query, target_path)


class RefreshEnvironment:
    """Execution environment of the refresh engine."""

    def __init__(self, settings: EnvironmentSettings, max_refreshes: int | None) -> None:
        self._settings = settings
        self._max_refreshes = max_refreshes
        self._catalogs: dict[str, CatalogSpec] = {}
        self._engines: dict[str, Engine] = {}
        self._current_catalog: str | None = None
        self._current_database: str | None = None
        # Refresh runs in-process only
        self.remote_host: str | None = None

    @property
    def current_database(self) -> str | None:
        return self._current_database

    def register_catalog(self, name: str, catalog: CatalogSpec) -> None:
        self._catalogs[name] = catalog
        # NullPool: no connections outlive a refresh
        self._engines[name] = create_engine(catalog.store.url, poolclass=NullPool)
        logger.debug("Registered catalog", catalog=name, default_database=catalog.default_database)

    def use_catalog(self, name: str) -> None:
        if name not in self._catalogs:
            raise QueryError(f"Catalog {name!r} is not registered")
        self._current_catalog = name
        self._current_database = self._catalogs[name].default_database

    def use_database(self, name: str) -> None:
        """Select the database unqualified names resolve against.

        Queries run on the catalog's store connection, so only the catalog's
        default database can be selected.
        """
        catalog = self._catalogs[self._selected_catalog()]
        if name != catalog.default_database:
            raise QueryError(
                f"The refresh engine resolves names in {catalog.default_database!r} only, cannot use database {name!r}"
            )
        self._current_database = name

    def close(self) -> None:
        """Dispose the connection pools of every registered catalog."""
        for name, engine in self._engines.items():
            engine.dispose()
            logger.debug("Disposed catalog engine", catalog=name)
        self._engines.clear()
        self._catalogs.clear()
        self._current_catalog = None

    def _selected_catalog(self) -> str:
        if self._current_catalog is None:
            raise QueryError("No catalog selected; register and use a catalog before querying")
        return self._current_catalog

    def _engine(self) -> Engine:
        return self._engines[self._selected_catalog()]

    def sql_query(self, query: str) -> RefreshQuery:
        statement = _strip_statement(query)
        try:
            with self._engine().connect() as conn:
                result = conn.execute(text(f"SELECT * FROM ({statement}) AS matflow_plan LIMIT 1"))
                names = list(result.keys())
                sample = result.first()
        except SQLAlchemyError as e:
            raise QueryError(f"Cannot plan query: {e}") from e
        if not names:
            raise QueryError("Query produces no columns")
        values = tuple(sample) if sample is not None else (None,) * len(names)
        schema = ResolvedSchema.of(*((name, infer_logical_type(value)) for name, value in zip(names, values, strict=True)))
        return RefreshQuery(self, statement, schema)

    def submit(self, query: str, target_path: str) -> RefreshJob:
        checkpoint = self._settings.checkpoint
        interval_ms = max(checkpoint.interval_ms, checkpoint.min_pause_between_ms)
        return RefreshJob(
            self._engine(),
            query,
            target_path,
            interval_seconds=interval_ms / 1000,
            max_refreshes=self._max_refreshes,
        )


class RefreshEngine:
    """Stream engine that materializes by periodic atomic refresh."""

    name = "refresh"

    def create_environment(self, environment: EnvironmentSettings) -> RefreshEnvironment:
        execution = environment.execution
        if execution.remote_host is not None:
            raise ConfigError("The refresh engine runs in-process and does not support remote_host")
        if environment.parallelism > 1:
            logger.info("Refresh engine executes sequentially; parallelism ignored", parallelism=environment.parallelism)
        return RefreshEnvironment(environment, _parse_max_refreshes(execution.options))


def _parse_max_refreshes(options: dict[str, str]) -> int | None:
    raw = options.get(MAX_REFRESHES_OPTION)
    if raw is None:
        return None
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{MAX_REFRESHES_OPTION} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise ConfigError(f"{MAX_REFRESHES_OPTION} must be positive, got {value}")
    return value


@hookimpl
def matflow_get_engines() -> list[type[RefreshEngine]]:
    return [RefreshEngine]
