"""
matflow: Continuous materialized-view pipelines.

Keeps the result of a declarative query incrementally up to date in a target
table of a relational store, with exactly-once checkpointing and an external
consistency coordinator.
"""

__version__ = "0.1.0"
