# src/matflow/core/store/types.py
"""Map engine logical types to SQLAlchemy column types.

Planned queries report column types as SQL-style strings, e.g.:

    BIGINT NOT NULL
    VARCHAR(64)
    DECIMAL(38, 18)
    TIMESTAMP(3)
    TIMESTAMP(3) WITH LOCAL TIME ZONE

parse_logical_type() splits such a string into a LogicalType and
to_sqlalchemy_type() turns that into a TypeEngine for table creation.
"""

import re
from dataclasses import dataclass
from typing import Any

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Double,
    Float,
    Integer,
    LargeBinary,
    Numeric,
    SmallInteger,
    String,
    Text,
    Time,
)
from sqlalchemy.dialects import mysql
from sqlalchemy.types import TypeEngine

from matflow.contracts.errors import ConfigError

# Longest VARCHAR created as-is; longer (or unbounded) strings become TEXT.
MAX_VARCHAR_LENGTH = 16383
# MySQL-family stores cannot index TEXT; key columns get a bounded length.
KEY_VARCHAR_LENGTH = 255

_TYPE_PATTERN = re.compile(
    r"^\s*(?P<name>[A-Za-z_][A-Za-z_ ]*?)\s*(?:\((?P<params>[^)]*)\))?"
    r"\s*(?P<time_zone>WITH\s+(?:LOCAL\s+)?TIME\s+ZONE)?\s*(?P<not_null>NOT\s+NULL)?\s*$",
    re.IGNORECASE,
)

_SIMPLE_TYPES: dict[str, type[TypeEngine[Any]]] = {
    "TINYINT": SmallInteger,
    "SMALLINT": SmallInteger,
    "INT": Integer,
    "INTEGER": Integer,
    "BIGINT": BigInteger,
    "FLOAT": Float,
    "REAL": Float,
    "DOUBLE": Double,
    "DOUBLE PRECISION": Double,
    "BOOLEAN": Boolean,
    "BOOL": Boolean,
    "DATE": Date,
    "TIME": Time,
    "BYTES": LargeBinary,
    "BINARY": LargeBinary,
    "VARBINARY": LargeBinary,
    "BLOB": LargeBinary,
}

_STRING_TYPES = frozenset({"STRING", "TEXT", "VARCHAR", "CHAR"})
_DECIMAL_TYPES = frozenset({"DECIMAL", "NUMERIC", "DEC"})
_TIMESTAMP_TYPES = frozenset(
    {
        "TIMESTAMP",
        "DATETIME",
        "TIMESTAMP_LTZ",
        "TIMESTAMP WITH TIME ZONE",
        "TIMESTAMP WITH LOCAL TIME ZONE",
    }
)
# MySQL DATETIME keeps at most microseconds.
MAX_FRACTIONAL_SECONDS = 6


@dataclass(frozen=True, slots=True)
class LogicalType:
    """Parsed logical type: base name, parameters and nullability."""

    name: str
    params: tuple[int, ...] = ()
    nullable: bool = True


def parse_logical_type(type_string: str) -> LogicalType:
    """Parse a logical type string.

    Raises:
        ConfigError: If the string is not a recognizable type expression.
    """
    match = _TYPE_PATTERN.match(type_string)
    if match is None:
        raise ConfigError(f"Unrecognized column type {type_string!r}")
    name = match.group("name")
    if match.group("time_zone"):
        # TIMESTAMP(3) WITH LOCAL TIME ZONE: the suffix belongs to the name
        name = f"{name} {match.group('time_zone')}"
    name = " ".join(name.upper().split())
    raw_params = match.group("params")
    params: tuple[int, ...] = ()
    if raw_params is not None and raw_params.strip():
        try:
            params = tuple(int(p) for p in raw_params.split(","))
        except ValueError:
            raise ConfigError(f"Non-integer type parameters in {type_string!r}") from None
    return LogicalType(name=name, params=params, nullable=match.group("not_null") is None)


def to_sqlalchemy_type(logical: LogicalType, *, key_column: bool = False) -> TypeEngine[Any]:
    """Build the SQLAlchemy type used to create a column.

    Args:
        logical: Parsed logical type
        key_column: True if the column is part of the primary key

    Raises:
        ConfigError: If the type has no store mapping.
    """
    name = logical.name
    if name in _SIMPLE_TYPES:
        return _SIMPLE_TYPES[name]()
    if name in _STRING_TYPES:
        length = logical.params[0] if logical.params else None
        if length is not None and length <= MAX_VARCHAR_LENGTH:
            return String(length)
        if key_column:
            return String(KEY_VARCHAR_LENGTH)
        return Text()
    if name in _DECIMAL_TYPES:
        precision = logical.params[0] if logical.params else 10
        scale = logical.params[1] if len(logical.params) > 1 else 0
        return Numeric(precision, scale)
    if name in _TIMESTAMP_TYPES:
        if not logical.params:
            return DateTime()
        fsp = min(logical.params[0], MAX_FRACTIONAL_SECONDS)
        return DateTime().with_variant(mysql.DATETIME(fsp=fsp), "mysql", "mariadb")
    raise ConfigError(f"Column type {name!r} has no store mapping")
