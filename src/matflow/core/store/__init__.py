# src/matflow/core/store/__init__.py
"""Destination store access: table gateway and logical type mapping."""

from matflow.core.store.gateway import TableDescription, TableGateway
from matflow.core.store.types import LogicalType, parse_logical_type, to_sqlalchemy_type

__all__ = [
    "LogicalType",
    "TableDescription",
    "TableGateway",
    "parse_logical_type",
    "to_sqlalchemy_type",
]
