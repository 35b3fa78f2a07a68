#!/usr/bin/env python3
"""
Materialize per-worker richness from worker, holding and currency tables.

Builds the same pipeline as settings.yaml, in code:

    python run_richness.py                                    # TiDB at localhost:4000/test
    python run_richness.py mysql+pymysql://root@tidb:4000/test
    python run_richness.py --demo                             # seeded SQLite, one refresh
"""

import sys
import tempfile
from pathlib import Path

from sqlalchemy import create_engine, text

from matflow.core.config import ExecutionSettings
from matflow.core.logging import configure_logging
from matflow.engine import PipelineBuilder

DEFAULT_URL = "mysql+pymysql://root@localhost:4000/test"

RICHNESS_QUERY = (
    "select w.id as id, w.name as name, sum(c.ratio * h.amount) as richness "
    "from worker w "
    "inner join holding h on w.id = h.w_id "
    "inner join currency c on h.c_id = c.id "
    "group by w.name, w.id"
)

DEMO_STATEMENTS = (
    "CREATE TABLE worker (id INTEGER PRIMARY KEY, name TEXT)",
    "CREATE TABLE currency (id INTEGER PRIMARY KEY, ratio REAL)",
    "CREATE TABLE holding (w_id INTEGER, c_id INTEGER, amount INTEGER)",
    "INSERT INTO worker VALUES (1, 'ann'), (2, 'bob')",
    "INSERT INTO currency VALUES (1, 1.0), (2, 0.5)",
    "INSERT INTO holding VALUES (1, 1, 10), (1, 2, 10), (2, 2, 8)",
)


def build_pipeline(url: str, *, max_refreshes: str | None = None) -> PipelineBuilder:
    """Builder for the richness view; max_refreshes bounds the refresh engine."""
    options = {"max_refreshes": max_refreshes} if max_refreshes is not None else {}
    return (
        PipelineBuilder()
        .set_store_url(url)
        .set_query(RICHNESS_QUERY)
        # .set_column_names("a", "b", "c")  # override column names inferred from the query
        # .set_primary_keys("id")  # defaults to the first column
        # .set_target_table("test", "richness")  # full table path
        .set_target_table("richness")
        .set_parallelism(2)
        .set_checkpoint_interval(1000)  # determines the data refresh rate
        .set_drop_old_table(True)
        .set_force_new_table(True)
        .set_execution_settings(ExecutionSettings(options=options))
    )


def seed_demo_store(path: Path) -> str:
    """Create a SQLite store with sample rows and return its URL."""
    url = f"sqlite:///{path}"
    engine = create_engine(url)
    try:
        with engine.begin() as conn:
            for statement in DEMO_STATEMENTS:
                conn.execute(text(statement))
    finally:
        engine.dispose()
    return url


def main(argv: list[str]) -> int:
    configure_logging()
    if argv and argv[0] == "--demo":
        with tempfile.TemporaryDirectory() as tmp:
            url = seed_demo_store(Path(tmp) / "richness.db")
            result = build_pipeline(url, max_refreshes="1").build().run()
            engine = create_engine(url)
            try:
                with engine.connect() as conn:
                    for row in conn.execute(text("SELECT id, name, richness FROM richness ORDER BY id")):
                        print(tuple(row))  # noqa: T201
            finally:
                engine.dispose()
    else:
        url = argv[0] if argv else DEFAULT_URL
        with build_pipeline(url).build() as pipeline:
            result = pipeline.run()
    print(f"Job {result.job_id} finished in {result.net_runtime_seconds}s")  # noqa: T201
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
