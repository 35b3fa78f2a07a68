# src/matflow/core/store/gateway.py
"""Relational table gateway for the destination store.

Thin, synchronous operations against the store using SQLAlchemy Core:
- default_database(): database the connection is bound to
- store_addresses(): endpoints of the store cluster
- drop_table() / create_table(): DDL for the target table
- describe_table(): columns and primary key of an existing table
- quoted_path(): dialect-safe ``database.table`` for generated statements

No retries are performed here. Every SQLAlchemy failure is re-raised as
StoreError; callers decide whether to retry.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import structlog
from sqlalchemy import Column, Connection, MetaData, Table, create_engine, inspect, text
from sqlalchemy.engine import URL, Engine
from sqlalchemy.exc import SQLAlchemyError

from matflow.contracts.errors import SchemaConflictError, StoreError
from matflow.core.store.types import parse_logical_type, to_sqlalchemy_type

logger = structlog.get_logger(__name__)

# TiDB exposes its placement-driver endpoints here.
_CLUSTER_INFO_QUERY = "SELECT INSTANCE FROM INFORMATION_SCHEMA.CLUSTER_INFO WHERE TYPE = 'pd'"


@dataclass(frozen=True, slots=True)
class TableDescription:
    """Shape of an existing table."""

    column_names: tuple[str, ...]
    primary_keys: tuple[str, ...]


class TableGateway:
    """Table operations over one exclusively owned store connection.

    Usage:
        gateway = TableGateway.connect("mysql+pymysql://root@localhost:4000/test")
        gateway.create_table("test", "richness", ["id"], ["BIGINT"], ["id"], fail_if_exists=False)
        gateway.close()
    """

    def __init__(self, connection: Connection, *, owns_engine: bool = False) -> None:
        self._connection = connection
        self._owns_engine = owns_engine
        self._closed = False

    @classmethod
    def connect(cls, url: str | URL, **connect_args: Any) -> "TableGateway":
        """Open a connection to the store.

        Raises:
            StoreError: If the engine cannot be created or the connection fails.
        """
        engine: Engine | None = None
        try:
            engine = create_engine(url, connect_args=connect_args)
            connection = engine.connect()
        except (SQLAlchemyError, ImportError) as e:
            if engine is not None:
                engine.dispose()
            raise StoreError(f"Cannot connect to store: {e}") from e
        return cls(connection, owns_engine=True)

    @property
    def connection(self) -> Connection:
        return self._connection

    @property
    def url(self) -> URL:
        return self._connection.engine.url

    @property
    def closed(self) -> bool:
        return self._closed

    def default_database(self) -> str | None:
        """Database (schema) the connection resolves unqualified names against."""
        try:
            name = inspect(self._connection).default_schema_name
        except SQLAlchemyError as e:
            raise StoreError(f"Cannot determine default database: {e}") from e
        return name or None

    def store_addresses(self) -> list[str]:
        """Endpoints of the store, in the order the store reports them.

        TiDB reports its placement-driver endpoints through CLUSTER_INFO.
        Other stores are addressed by the connection's own host and port;
        embedded stores (e.g. SQLite) by their database path.

        Raises:
            StoreError: If no endpoint can be determined.
        """
        url = self.url
        addresses: list[str] = []
        if self._connection.dialect.name == "mysql":
            try:
                rows = self._connection.execute(text(_CLUSTER_INFO_QUERY)).all()
                addresses = [str(row[0]) for row in rows]
            except SQLAlchemyError:
                # Plain MySQL has no CLUSTER_INFO; fall back to the URL
                self._rollback_quietly()
        if not addresses:
            if url.host:
                addresses = [f"{url.host}:{url.port}" if url.port else url.host]
            elif url.database:
                addresses = [url.database]
        if not addresses:
            raise StoreError(f"No store endpoint known for {url.render_as_string(hide_password=True)}")
        return addresses

    def quoted_path(self, database: str, table: str) -> str:
        """Qualified, dialect-quoted table path for embedding in statements."""
        preparer = self._connection.dialect.identifier_preparer
        return f"{preparer.quote_schema(database)}.{preparer.quote(table)}"

    def table_exists(self, database: str, table: str) -> bool:
        try:
            return inspect(self._connection).has_table(table, schema=database)
        except SQLAlchemyError as e:
            raise StoreError(f"Cannot inspect {database}.{table}: {e}") from e

    def describe_table(self, database: str, table: str) -> TableDescription | None:
        """Columns and primary key of an existing table, None if absent."""
        if not self.table_exists(database, table):
            return None
        try:
            inspector = inspect(self._connection)
            columns = inspector.get_columns(table, schema=database)
            pk = inspector.get_pk_constraint(table, schema=database)
        except SQLAlchemyError as e:
            raise StoreError(f"Cannot describe {database}.{table}: {e}") from e
        return TableDescription(
            column_names=tuple(c["name"] for c in columns),
            primary_keys=tuple(pk.get("constrained_columns") or ()),
        )

    def drop_table(self, database: str, table: str) -> None:
        """Drop the table. No-op if it does not exist.

        Raises:
            StoreError: On connection or permission failure.
        """
        try:
            Table(table, MetaData(), schema=database).drop(self._connection, checkfirst=True)
            self._connection.commit()
        except SQLAlchemyError as e:
            self._rollback_quietly()
            raise StoreError(f"Cannot drop {database}.{table}: {e}") from e
        logger.info("Dropped target table", database=database, table=table)

    def create_table(
        self,
        database: str,
        table: str,
        column_names: Sequence[str],
        column_types: Sequence[str],
        primary_keys: Sequence[str],
        *,
        fail_if_exists: bool,
    ) -> bool:
        """Create the table unless it already exists.

        Args:
            database: Target database (schema)
            table: Target table name
            column_names: Ordered column names
            column_types: Logical type per column (see core.store.types)
            primary_keys: Primary key columns (subset of column_names)
            fail_if_exists: Raise instead of accepting an existing table

        Returns:
            True if the table was created, False if an existing table was kept.

        Raises:
            SchemaConflictError: If fail_if_exists and the table exists,
                whatever its shape.
            StoreError: On any lower-level failure.
            ConfigError: If a column type has no store mapping.
        """
        if self.table_exists(database, table):
            if fail_if_exists:
                raise SchemaConflictError("Target table already exists", table_path=f"{database}.{table}")
            logger.info("Target table exists, keeping it", database=database, table=table)
            return False

        keys = set(primary_keys)
        columns: list[Column[Any]] = []
        for name, type_string in zip(column_names, column_types, strict=True):
            logical = parse_logical_type(type_string)
            is_key = name in keys
            columns.append(
                Column(
                    name,
                    to_sqlalchemy_type(logical, key_column=is_key),
                    primary_key=is_key,
                    nullable=logical.nullable and not is_key,
                    autoincrement=False,
                )
            )
        target = Table(table, MetaData(), *columns, schema=database)
        try:
            target.create(self._connection, checkfirst=False)
            self._connection.commit()
        except SQLAlchemyError as e:
            self._rollback_quietly()
            raise StoreError(f"Cannot create {database}.{table}: {e}") from e
        logger.info(
            "Created target table",
            database=database,
            table=table,
            columns=list(column_names),
            primary_keys=list(primary_keys),
        )
        return True

    def close(self) -> None:
        """Close the connection (and its engine, if owned). Idempotent."""
        if self._closed:
            return
        self._closed = True
        try:
            self._connection.close()
        finally:
            if self._owns_engine:
                self._connection.engine.dispose()

    def _rollback_quietly(self) -> None:
        try:
            self._connection.rollback()
        except SQLAlchemyError as e:
            logger.debug("Rollback after store failure also failed", error=str(e))
