# src/matflow/engine/__init__.py
"""Pipeline engine: build, run and close materialized-view pipelines.

- PipelineBuilder: validates configuration and assembles a Pipeline
- Pipeline: immutable pipeline owning its connection and coordinator
- PipelineRunner: ensures the target table, starts the coordinator,
  submits the job and always cleans up

Example:
    from matflow.engine import PipelineBuilder

    builder = (
        PipelineBuilder()
        .set_store_url("mysql+pymysql://root@localhost:4000/test")
        .set_query("select id, name, sum(amount) as total from holding group by id, name")
        .set_target_table("totals")
    )
    with builder.build() as pipeline:
        pipeline.run()
"""

from matflow.engine.builder import PipelineBuilder
from matflow.engine.pipeline import Pipeline
from matflow.engine.runner import PipelineRunner, run_pipeline

__all__ = ["Pipeline", "PipelineBuilder", "PipelineRunner", "run_pipeline"]
