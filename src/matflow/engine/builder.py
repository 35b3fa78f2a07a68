# src/matflow/engine/builder.py
"""Fluent builder that validates configuration and assembles a Pipeline.

Setters may be called in any order. build() then resolves defaults, plans
the query and reconciles the target schema:

    (a) require a store connection (and a query and target table)
    (b) default database from the connection when not given
    (c) explicit and connection default databases must agree
    (d) target database defaults to the default database
    (e) store configuration from the first store endpoint
    (f) execution environment: parallelism, exactly-once checkpointing
    (g) execution settings must be in streaming mode
    (h) coordinator: explicit, or created from environment-derived options
    (i) register the store catalog under the default database
    (j) plan the query
    (k) reconcile column names and primary keys
    (l) assemble the Pipeline

Any failure aborts construction. Resources the builder opened itself (a
connection from set_store_url(), a coordinator it created, the engine
environment) are released before the error propagates; resources supplied
by the caller stay open and remain the caller's to close.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

import structlog
from pydantic import ValidationError
from sqlalchemy import Connection

from matflow.contracts import (
    CATALOG_NAME,
    HOST_OPTION_KEY,
    PROVIDER_OPTION_KEY,
    CatalogSpec,
    ClosableEnvironmentProtocol,
    ConfigError,
    CoordinatorProtocol,
    StoreConfig,
    StreamEngineProtocol,
    TablePath,
)
from matflow.core.config import (
    DEFAULT_CHECKPOINT_INTERVAL_MS,
    DEFAULT_PARALLELISM,
    CheckpointSettings,
    EnvironmentSettings,
    ExecutionSettings,
    PipelineSettings,
)
from matflow.core.reconcile import reconcile_target
from matflow.core.store import TableGateway
from matflow.engine.pipeline import Pipeline
from matflow.plugins.manager import PluginManager, get_plugin_manager

logger = structlog.get_logger(__name__)


def _names(values: tuple[Any, ...]) -> list[str]:
    """Accept both set_x("a", "b") and set_x(["a", "b"])."""
    if len(values) == 1 and not isinstance(values[0], str) and isinstance(values[0], Iterable):
        return [str(v) for v in values[0]]
    return [str(v) for v in values]


class PipelineBuilder:
    """Collects pipeline configuration and builds an immutable Pipeline.

    Example:
        pipeline = (
            PipelineBuilder()
            .set_store_url("mysql+pymysql://root@localhost:4000/test")
            .set_query("select w.id as id, w.name as name, sum(h.amount) as richness ...")
            .set_target_table("richness")
            .set_parallelism(2)
            .set_checkpoint_interval(1000)
            .set_drop_old_table(True)
            .build()
        )
    """

    def __init__(self, *, plugin_manager: PluginManager | None = None) -> None:
        self._plugin_manager = plugin_manager
        self._connection: Connection | TableGateway | None = None
        self._store_url: str | None = None
        self._connect_args: dict[str, Any] = {}
        self._coordinator: CoordinatorProtocol | None = None
        self._coordinator_options: dict[str, str] = {}
        self._stream_engine: StreamEngineProtocol | None = None
        self._default_database: str | None = None
        self._target_database: str | None = None
        self._target_table: str | None = None
        self._query: str | None = None
        self._execution: ExecutionSettings | None = None
        self._column_names: list[str] | None = None
        self._primary_keys: list[str] | None = None

        self._parallelism = DEFAULT_PARALLELISM
        self._checkpoint_interval = DEFAULT_CHECKPOINT_INTERVAL_MS
        self._drop_old_table = False
        self._force_new_table = True
        self._validate_existing_table = False

        self._built = False

    @classmethod
    def from_settings(
        cls,
        settings: PipelineSettings,
        *,
        plugin_manager: PluginManager | None = None,
    ) -> PipelineBuilder:
        """Builder pre-populated from validated settings."""
        builder = (
            cls(plugin_manager=plugin_manager)
            .set_store_url(settings.store.url, **settings.store.connect_args)
            .set_query(settings.query)
            .set_parallelism(settings.parallelism)
            .set_checkpoint_interval(settings.checkpoint_interval_ms)
            .set_drop_old_table(settings.drop_old_table)
            .set_force_new_table(settings.force_new_table)
            .set_validate_existing_table(settings.validate_existing_table)
            .set_execution_settings(settings.execution)
        )
        if settings.target.database is not None:
            builder.set_target_table(settings.target.database, settings.target.table)
        else:
            builder.set_target_table(settings.target.table)
        if settings.default_database is not None:
            builder.set_default_database(settings.default_database)
        if settings.column_names is not None:
            builder.set_column_names(settings.column_names)
        if settings.primary_keys is not None:
            builder.set_primary_keys(settings.primary_keys)
        if settings.coordinator is not None:
            builder.set_coordinator_options(
                {PROVIDER_OPTION_KEY: settings.coordinator.provider, **settings.coordinator.options}
            )
        return builder

    # === Setters ===

    def _check_mutable(self) -> None:
        if self._built:
            raise ConfigError("Builder has already built a pipeline; create a new builder")

    def set_store_url(self, url: str, **connect_args: Any) -> PipelineBuilder:
        """Connect to the store at build time. The pipeline owns the connection."""
        self._check_mutable()
        self._store_url = url
        self._connect_args = dict(connect_args)
        self._connection = None
        return self

    def set_connection(self, connection: Connection | TableGateway) -> PipelineBuilder:
        """Use an open connection. It is handed to the pipeline on success."""
        self._check_mutable()
        self._connection = connection
        self._store_url = None
        return self

    def set_coordinator(self, coordinator: CoordinatorProtocol) -> PipelineBuilder:
        self._check_mutable()
        self._coordinator = coordinator
        return self

    def set_coordinator_options(self, options: Mapping[str, str]) -> PipelineBuilder:
        """Options for the coordinator created when none is set explicitly."""
        self._check_mutable()
        self._coordinator_options = dict(options)
        return self

    def set_stream_engine(self, engine: StreamEngineProtocol) -> PipelineBuilder:
        """Use this engine instead of looking one up by execution.engine."""
        self._check_mutable()
        self._stream_engine = engine
        return self

    def set_default_database(self, database: str) -> PipelineBuilder:
        self._check_mutable()
        self._default_database = database
        return self

    def set_target_table(self, *path: str) -> PipelineBuilder:
        """set_target_table(table), set_target_table("database.table") or set_target_table(database, table)."""
        self._check_mutable()
        if len(path) == 1:
            self._target_database, self._target_table = None, path[0]
        elif len(path) == 2:
            self._target_database, self._target_table = path
        else:
            raise ConfigError(f"Target table takes (table) or (database, table), got {len(path)} parts")
        return self

    def set_query(self, query: str) -> PipelineBuilder:
        self._check_mutable()
        self._query = query
        return self

    def set_execution_settings(self, settings: ExecutionSettings) -> PipelineBuilder:
        self._check_mutable()
        self._execution = settings
        return self

    def set_column_names(self, *names: str | Iterable[str]) -> PipelineBuilder:
        """Override the column names inferred from the query."""
        self._check_mutable()
        self._column_names = _names(names)
        return self

    def set_primary_keys(self, *names: str | Iterable[str]) -> PipelineBuilder:
        """Primary key columns; defaults to the query's key or its first column."""
        self._check_mutable()
        self._primary_keys = _names(names)
        return self

    def set_parallelism(self, parallelism: int) -> PipelineBuilder:
        self._check_mutable()
        self._parallelism = parallelism
        return self

    def set_checkpoint_interval(self, interval_ms: int) -> PipelineBuilder:
        """Checkpoint interval in milliseconds. Determines data refresh rate."""
        self._check_mutable()
        self._checkpoint_interval = interval_ms
        return self

    def set_drop_old_table(self, drop_old_table: bool) -> PipelineBuilder:
        self._check_mutable()
        self._drop_old_table = drop_old_table
        return self

    def set_force_new_table(self, force_new_table: bool) -> PipelineBuilder:
        """Fail if the target table already exists (after an optional drop)."""
        self._check_mutable()
        self._force_new_table = force_new_table
        return self

    def set_validate_existing_table(self, validate: bool) -> PipelineBuilder:
        """Check an existing target table's columns and key before running."""
        self._check_mutable()
        self._validate_existing_table = validate
        return self

    # === Build ===

    def build(self) -> Pipeline:
        """Validate, resolve defaults, plan and reconcile.

        Raises:
            ConfigError: Missing, invalid or contradictory configuration.
            StoreError: The store could not be reached.
            QueryError: The query could not be planned.
        """
        self._check_mutable()

        # (a) required inputs, checked before any resource is touched
        if self._connection is None and self._store_url is None:
            raise ConfigError("Store connection must be specified")
        if not self._query or not self._query.strip():
            raise ConfigError("Query must be specified")
        if not self._target_table:
            raise ConfigError("Target table must be specified")

        owns_gateway = self._connection is None
        gateway = self._open_gateway()
        try:
            pipeline = self._assemble(gateway)
        except BaseException:
            if owns_gateway:
                gateway.close()
            raise
        self._built = True
        return pipeline

    def _open_gateway(self) -> TableGateway:
        if isinstance(self._connection, TableGateway):
            return self._connection
        if self._connection is not None:
            return TableGateway(self._connection)
        if self._store_url is None:
            raise ConfigError("Store connection must be specified")
        return TableGateway.connect(self._store_url, **self._connect_args)

    def _assemble(self, gateway: TableGateway) -> Pipeline:
        # (b) / (c) default database
        connection_database = gateway.default_database()
        default_database = self._default_database if self._default_database is not None else connection_database
        if default_database is None:
            raise ConfigError("Default database must be specified either by the connection or explicitly")
        if connection_database is not None and default_database != connection_database:
            raise ConfigError(
                f"Default database mismatched: explicit {default_database!r}, connection {connection_database!r}"
            )

        # (d) target table path
        path = self._target_path(default_database)
        logger.debug("Resolved databases", default_database=default_database, target=str(path))

        # (e) store configuration
        store = StoreConfig(url=gateway.url, endpoint=gateway.store_addresses()[0])

        # (f) execution environment
        execution = self._execution if self._execution is not None else ExecutionSettings()
        try:
            environment_settings = EnvironmentSettings(
                parallelism=self._parallelism,
                checkpoint=CheckpointSettings(interval_ms=self._checkpoint_interval),
                execution=execution,
            )
        except ValidationError as e:
            raise ConfigError(f"Invalid execution environment: {e}") from e
        engine = self._stream_engine
        if engine is None:
            engine = self._plugins().create_engine(execution.engine)
        environment = engine.create_environment(environment_settings)

        created: CoordinatorProtocol | None = None
        try:
            # (g) streaming mode only
            if not execution.is_streaming_mode:
                raise ConfigError("Execution settings must be in streaming mode")

            # (h) coordinator
            coordinator = self._coordinator
            if coordinator is None:
                options = {HOST_OPTION_KEY: environment.remote_host} if environment.remote_host else {}
                options.update(self._coordinator_options)
                coordinator = created = self._plugins().create_coordinator(options)

            # (i) catalog bridging the store into the engine
            environment.register_catalog(
                CATALOG_NAME,
                CatalogSpec(
                    name=CATALOG_NAME,
                    store=store,
                    default_database=default_database,
                    coordinator_options=dict(coordinator.options()),
                ),
            )
            environment.use_catalog(CATALOG_NAME)

            # (j) plan, (k) reconcile
            planned = environment.sql_query(self._query or "")
            target = reconcile_target(
                path,
                planned.resolved_schema,
                column_name_override=self._column_names,
                primary_key_override=self._primary_keys,
            )
        except BaseException:
            if created is not None:
                created.close()
            if isinstance(environment, ClosableEnvironmentProtocol):
                environment.close()
            raise

        # (l) assemble
        pipeline = Pipeline(
            gateway=gateway,
            coordinator=coordinator,
            environment=environment,
            query=planned,
            default_database=default_database,
            target=target,
            drop_old_table=self._drop_old_table,
            force_new_table=self._force_new_table,
            validate_existing_table=self._validate_existing_table,
        )
        return pipeline

    def _target_path(self, default_database: str) -> TablePath:
        if not self._target_table:
            raise ConfigError("Target table must be specified")
        if self._target_database is not None:
            return TablePath(database=self._target_database, table=self._target_table)
        return TablePath.parse(self._target_table, default_database=default_database)

    def _plugins(self) -> PluginManager:
        if self._plugin_manager is None:
            self._plugin_manager = get_plugin_manager()
        return self._plugin_manager
