# src/matflow/engine/runner.py
"""Drives a built Pipeline from table provisioning to job completion.

Run sequence (strict ordering):
1. Select the bridged catalog and the default database
2. Ensure the target table: drop if configured, then create if absent
   (an existing table is a SchemaConflictError when force_new_table
   without drop_old_table)
3. Start the coordinator
4. Submit the reconciled query as a continuous insert into the target
5. Block until the job terminates

The table exists before the coordinator starts, and the coordinator runs
before the first row is submitted. Whatever happens, the pipeline is closed
afterwards (coordinator first, then the store connection).

run() blocks for the lifetime of the job, which for a continuous view may be
unbounded. Callers that need to keep working must run it on their own thread.
"""

from __future__ import annotations

import structlog

from matflow.contracts import (
    CATALOG_NAME,
    JobExecutionResult,
    JobHandleProtocol,
    PipelineError,
    SchemaConflictError,
)
from matflow.engine.pipeline import Pipeline

logger = structlog.get_logger(__name__)


class PipelineRunner:
    """Runs one Pipeline exactly once."""

    def __init__(self, pipeline: Pipeline) -> None:
        self._pipeline = pipeline
        self._job: JobHandleProtocol | None = None

    @property
    def pipeline(self) -> Pipeline:
        return self._pipeline

    @property
    def job(self) -> JobHandleProtocol | None:
        """Handle of the submitted job, None until submission."""
        return self._job

    def run(self) -> JobExecutionResult:
        """Run the pipeline to completion, then close it.

        Returns:
            Result of the finished streaming job.

        Raises:
            PipelineError: On any failure; the concrete error is chained as
                ``__cause__``. Raised after cleanup has run. Interrupts
                (KeyboardInterrupt, SystemExit) propagate unwrapped, also
                after cleanup.
        """
        pipeline = self._pipeline
        if pipeline.closed or pipeline.consumed:
            raise PipelineError("Pipeline has already been run or closed; build a new one")
        pipeline.mark_consumed()

        try:
            environment = pipeline.environment
            environment.use_catalog(CATALOG_NAME)
            environment.use_database(pipeline.default_database)

            self._ensure_target_table()

            coordinator = pipeline.coordinator
            logger.info("Start coordinator", options=dict(coordinator.options()))
            coordinator.start()

            path = pipeline.target.path
            quoted_target = pipeline.gateway.quoted_path(path.database, path.table)
            logger.info("Execute insert into", target=quoted_target)
            self._job = pipeline.query.execute_insert(quoted_target)

            result = self._job.await_completion()
            logger.info(
                "Streaming job finished",
                job_id=result.job_id,
                net_runtime_seconds=result.net_runtime_seconds,
                accumulators=dict(result.accumulators),
            )
            return result
        except Exception as e:
            logger.error("Error running pipeline", error=str(e), error_type=type(e).__name__, exc_info=True)
            raise PipelineError(f"Pipeline run failed: {type(e).__name__}: {e}", cause=e) from e
        except BaseException:
            # Interrupted from outside: stop the job before releasing resources
            if self._job is not None:
                self._cancel_job_quietly()
            raise
        finally:
            pipeline.close()

    def close(self) -> None:
        """Close the underlying pipeline. Idempotent."""
        self._pipeline.close()

    def _ensure_target_table(self) -> None:
        pipeline = self._pipeline
        gateway = pipeline.gateway
        target = pipeline.target
        database, table = target.path.database, target.path.table

        if pipeline.drop_old_table:
            gateway.drop_table(database, table)

        created = gateway.create_table(
            database,
            table,
            target.column_names,
            target.column_types,
            target.primary_keys,
            # A dropped table is known to be absent
            fail_if_exists=pipeline.force_new_table and not pipeline.drop_old_table,
        )
        if not created and pipeline.validate_existing_table:
            self._validate_existing_table()

    def _validate_existing_table(self) -> None:
        """Compare an existing table's columns and key with the TargetTableSpec.

        Raises:
            SchemaConflictError: If columns or primary key differ.
        """
        target = self._pipeline.target
        path = target.path
        description = self._pipeline.gateway.describe_table(path.database, path.table)
        if description is None:
            raise SchemaConflictError("Target table disappeared during validation", table_path=str(path))

        existing, expected = set(description.column_names), set(target.column_names)
        if existing != expected:
            raise SchemaConflictError(
                "Existing table columns do not match the query",
                table_path=str(path),
                missing_columns=sorted(expected - existing),
                extra_columns=sorted(existing - expected),
            )
        if set(description.primary_keys) != set(target.primary_keys):
            raise SchemaConflictError(
                f"Existing table primary key {list(description.primary_keys)} "
                f"differs from {list(target.primary_keys)}",
                table_path=str(path),
            )

    def _cancel_job_quietly(self) -> None:
        assert self._job is not None
        try:
            self._job.cancel()
        except Exception as e:
            logger.warning("Job cancel failed during interrupt", error=str(e), error_type=type(e).__name__)


def run_pipeline(pipeline: Pipeline) -> JobExecutionResult:
    """Run ``pipeline`` to completion. See PipelineRunner.run()."""
    return PipelineRunner(pipeline).run()
