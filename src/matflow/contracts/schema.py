# src/matflow/contracts/schema.py
"""Schema contracts shared by the engine, the reconciler and the store.

- Column: one (name, logical type) pair reported by query planning
- ResolvedSchema: ordered output columns of a planned query plus its
  inferred primary key, if the planner could derive one
- TablePath: qualified (database, table) destination
- TargetTableSpec: the reconciled shape the destination table must have

All types are frozen; they are produced once and only read afterwards.
"""

from dataclasses import dataclass, field

from matflow.contracts.errors import ConfigError


@dataclass(frozen=True, slots=True)
class Column:
    """A single output column.

    ``data_type`` is the engine's logical type string, e.g. ``BIGINT``,
    ``VARCHAR(64) NOT NULL`` or ``DECIMAL(38, 18)``. It is mapped to a
    store type by ``matflow.core.store.types``.
    """

    name: str
    data_type: str


@dataclass(frozen=True, slots=True)
class ResolvedSchema:
    """Output schema of a planned declarative query."""

    columns: tuple[Column, ...]
    primary_key: tuple[str, ...] | None = None

    def __post_init__(self) -> None:
        if not self.columns:
            raise ConfigError("Resolved schema must contain at least one column")

    @classmethod
    def of(cls, *columns: tuple[str, str], primary_key: tuple[str, ...] | None = None) -> "ResolvedSchema":
        """Build a schema from ``(name, type)`` pairs."""
        return cls(columns=tuple(Column(name, data_type) for name, data_type in columns), primary_key=primary_key)

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(c.name for c in self.columns)

    @property
    def column_types(self) -> tuple[str, ...]:
        return tuple(c.data_type for c in self.columns)

    def __len__(self) -> int:
        return len(self.columns)


@dataclass(frozen=True, slots=True)
class TablePath:
    """Qualified destination table."""

    database: str
    table: str

    @classmethod
    def parse(cls, path: str, *, default_database: str) -> "TablePath":
        """Parse ``table`` or ``database.table``.

        Raises:
            ConfigError: If the path is empty or has more than two parts.
        """
        parts = [p.strip() for p in path.split(".")]
        if any(not p for p in parts) or len(parts) > 2:
            raise ConfigError(f"Invalid table path {path!r}, expected 'table' or 'database.table'")
        if len(parts) == 1:
            return cls(database=default_database, table=parts[0])
        return cls(database=parts[0], table=parts[1])

    def __str__(self) -> str:
        return f"{self.database}.{self.table}"


@dataclass(frozen=True, slots=True)
class TargetTableSpec:
    """Reconciled shape of the destination table.

    Invariants (checked at construction):
    - column_names and column_types have equal, non-zero length
    - column names are unique
    - primary_keys is non-empty and a subset of column_names
    """

    path: TablePath
    column_names: tuple[str, ...]
    column_types: tuple[str, ...]
    primary_keys: tuple[str, ...] = field(default=())

    def __post_init__(self) -> None:
        if not self.column_names:
            raise ConfigError("Target table must have at least one column")
        if len(self.column_names) != len(self.column_types):
            raise ConfigError(
                f"Mismatched size of columnNames ({len(self.column_names)}) "
                f"and column types ({len(self.column_types)})"
            )
        if len(set(self.column_names)) != len(self.column_names):
            raise ConfigError(f"Duplicate column names: {list(self.column_names)}")
        if not self.primary_keys:
            raise ConfigError("PrimaryKeys can't be empty")
        missing = [k for k in self.primary_keys if k not in self.column_names]
        if missing:
            raise ConfigError(f"PrimaryKeys must be contained by columnNames, unknown: {missing}")

    @property
    def columns(self) -> tuple[tuple[str, str], ...]:
        """``(name, type)`` pairs in column order."""
        return tuple(zip(self.column_names, self.column_types, strict=True))
