# src/matflow/contracts/engine.py
"""Streaming engine contracts.

The stream-processing engine (execution, checkpointing, planning) is an
external collaborator. matflow talks to it through these protocols only:

    engine.create_environment(environment) -> StreamEnvironmentProtocol
    env.register_catalog(name, catalog) / use_catalog / use_database
    env.close()                                         (optional)
    env.sql_query(query) -> PlannedQueryProtocol        (raises QueryError)
    planned.execute_insert(quoted_path) -> JobHandleProtocol
    job.await_completion() -> JobExecutionResult        (blocks)

Engines are discovered through the plugin manager by name.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from sqlalchemy.engine import URL

    from matflow.contracts.schema import ResolvedSchema
    from matflow.core.config import EnvironmentSettings

# Name under which the store's metadata is bridged into the query engine.
CATALOG_NAME = "matflow"


@dataclass(frozen=True, slots=True)
class StoreConfig:
    """Relational store configuration handed to the engine.

    Attributes:
        url: SQLAlchemy URL of the store (credentials retained for connecting)
        endpoint: First known store endpoint (placement/cluster address)
    """

    url: "URL"
    endpoint: str


@dataclass(frozen=True, slots=True)
class CatalogSpec:
    """Everything the engine needs to bridge the store's metadata."""

    name: str
    store: StoreConfig
    default_database: str
    coordinator_options: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class JobExecutionResult:
    """Outcome of a finished streaming job."""

    job_id: str
    net_runtime_ms: int
    accumulators: Mapping[str, int] = field(default_factory=dict)

    @property
    def net_runtime_seconds(self) -> int:
        return self.net_runtime_ms // 1000


@runtime_checkable
class JobHandleProtocol(Protocol):
    """Handle on a submitted continuous insert."""

    job_id: str

    def await_completion(self) -> JobExecutionResult:
        """Block until the job terminates.

        Raises:
            Exception: Whatever the engine raises when the job fails.
        """
        ...

    def cancel(self) -> None:
        """Request termination. await_completion() returns afterwards."""
        ...


@runtime_checkable
class PlannedQueryProtocol(Protocol):
    """A declarative query that has been planned against the catalog."""

    resolved_schema: "ResolvedSchema"

    def execute_insert(self, target_path: str) -> JobHandleProtocol:
        """Submit the query as a continuous insert into ``target_path``."""
        ...


@runtime_checkable
class StreamEnvironmentProtocol(Protocol):
    """Configured execution + table environment."""

    # Host of the remote execution cluster, None when running locally.
    remote_host: str | None

    def register_catalog(self, name: str, catalog: CatalogSpec) -> None: ...

    def use_catalog(self, name: str) -> None: ...

    def use_database(self, name: str) -> None: ...

    def sql_query(self, query: str) -> PlannedQueryProtocol:
        """Plan ``query``.

        Raises:
            QueryError: On invalid SQL or unresolvable catalog references.
        """
        ...


@runtime_checkable
class ClosableEnvironmentProtocol(Protocol):
    """Environment holding resources of its own (e.g. connection pools).

    Optional: the pipeline calls close() last, after the coordinator and the
    store connection, and a failed build calls it before propagating.
    """

    def close(self) -> None: ...


@runtime_checkable
class StreamEngineProtocol(Protocol):
    """Factory for execution environments. Registered by name."""

    name: str

    def create_environment(self, environment: "EnvironmentSettings") -> StreamEnvironmentProtocol:
        """Create an environment configured with parallelism and checkpointing."""
        ...
