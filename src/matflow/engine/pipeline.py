# src/matflow/engine/pipeline.py
"""The assembled, immutable materialized-view pipeline.

A Pipeline is produced by PipelineBuilder.build() and consumed by exactly one
PipelineRunner.run(). It exclusively owns the store connection (via its
TableGateway) and the coordinator, and closes the engine environment when
the environment holds resources of its own.

Usage:
    with PipelineBuilder().set_store_url(url).set_query(sql).set_target_table("mv").build() as pipeline:
        pipeline.run()
"""

from __future__ import annotations

from collections.abc import Callable
from types import TracebackType
from typing import TYPE_CHECKING

import structlog

from matflow.contracts import (
    ClosableEnvironmentProtocol,
    CoordinatorProtocol,
    JobExecutionResult,
    PlannedQueryProtocol,
    StreamEnvironmentProtocol,
    TargetTableSpec,
)

if TYPE_CHECKING:
    from matflow.core.store import TableGateway

logger = structlog.get_logger(__name__)


class Pipeline:
    """Built pipeline: resolved configuration plus its live resources.

    All configuration is read-only after construction. The only state that
    changes is the lifecycle: not run -> running -> closed.
    """

    def __init__(
        self,
        *,
        gateway: TableGateway,
        coordinator: CoordinatorProtocol,
        environment: StreamEnvironmentProtocol,
        query: PlannedQueryProtocol,
        default_database: str,
        target: TargetTableSpec,
        drop_old_table: bool,
        force_new_table: bool,
        validate_existing_table: bool = False,
    ) -> None:
        self._gateway = gateway
        self._coordinator = coordinator
        self._environment = environment
        self._query = query
        self._default_database = default_database
        self._target = target
        self._drop_old_table = drop_old_table
        self._force_new_table = force_new_table
        self._validate_existing_table = validate_existing_table
        self._consumed = False
        self._closed = False

    @property
    def gateway(self) -> TableGateway:
        return self._gateway

    @property
    def coordinator(self) -> CoordinatorProtocol:
        return self._coordinator

    @property
    def environment(self) -> StreamEnvironmentProtocol:
        return self._environment

    @property
    def query(self) -> PlannedQueryProtocol:
        return self._query

    @property
    def default_database(self) -> str:
        return self._default_database

    @property
    def target(self) -> TargetTableSpec:
        return self._target

    @property
    def drop_old_table(self) -> bool:
        return self._drop_old_table

    @property
    def force_new_table(self) -> bool:
        return self._force_new_table

    @property
    def validate_existing_table(self) -> bool:
        return self._validate_existing_table

    @property
    def consumed(self) -> bool:
        return self._consumed

    @property
    def closed(self) -> bool:
        return self._closed

    def mark_consumed(self) -> None:
        """Claim the pipeline for a run. Called once by the runner."""
        self._consumed = True

    def run(self) -> JobExecutionResult:
        """Run to completion and close. See PipelineRunner.run()."""
        from matflow.engine.runner import PipelineRunner

        return PipelineRunner(self).run()

    def close(self) -> None:
        """Release the coordinator, then the store connection, then the environment.

        Idempotent: only the first call touches the resources. Every step is
        attempted; failures are logged and never raised, so a primary error
        from run() is not masked.
        """
        if self._closed:
            return
        self._closed = True
        logger.info("Closing pipeline", target=str(self._target.path))

        steps: list[tuple[str, Callable[[], None]]] = [
            ("coordinator.close", self._coordinator.close),
            ("connection.close", self._gateway.close),
        ]
        if isinstance(self._environment, ClosableEnvironmentProtocol):
            steps.append(("environment.close", self._environment.close))
        for hook, step in steps:
            try:
                step()
            except Exception as e:
                logger.warning(
                    "Pipeline cleanup step failed",
                    hook=hook,
                    error=str(e),
                    error_type=type(e).__name__,
                )

    def __enter__(self) -> Pipeline:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()
