# src/matflow/contracts/errors.py
"""Exception taxonomy for matflow.

Every failure surfaced by the orchestrator is one of these types. They are
raised where the problem is detected and propagate unchanged, except that
``Pipeline.run()`` wraps its primary failure in ``PipelineError`` after
cleanup has run.

Hierarchy:
    MatflowError
    ├── ConfigError           missing, invalid or contradictory configuration
    ├── SchemaConflictError   target table exists and conflicts with intent
    ├── StoreError            I/O, permission or protocol failure on the store
    ├── QueryError            declarative query failed to plan
    ├── CoordinatorError      coordinator failed to start (or misused)
    └── PipelineError         any failure during run(), after cleanup
"""

from collections.abc import Sequence


class MatflowError(Exception):
    """Base class for all matflow errors."""


class ConfigError(MatflowError):
    """Configuration is missing, invalid or self-contradictory.

    Always fatal to ``build()`` and never retried.
    """


class SchemaConflictError(MatflowError):
    """Target table exists and is incompatible with force/override intent.

    Attributes:
        table_path: Qualified ``database.table`` the conflict refers to
        missing_columns: Expected columns absent from the existing table
        extra_columns: Existing columns the pipeline would not write
    """

    def __init__(
        self,
        message: str,
        *,
        table_path: str,
        missing_columns: Sequence[str] = (),
        extra_columns: Sequence[str] = (),
    ) -> None:
        self.table_path = table_path
        self.missing_columns = tuple(missing_columns)
        self.extra_columns = tuple(extra_columns)
        super().__init__(f"{message}: {table_path}")


class StoreError(MatflowError):
    """Failure talking to the relational store. No internal retry."""


class QueryError(MatflowError):
    """The declarative query could not be planned."""


class CoordinatorError(MatflowError):
    """The consistency coordinator failed to start or was misused."""


class PipelineError(MatflowError):
    """Failure while running a pipeline.

    Raised by ``Pipeline.run()`` after unconditional cleanup. The primary
    failure is chained as ``__cause__`` and exposed as ``cause``.
    """

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        self.cause = cause
        super().__init__(message)
