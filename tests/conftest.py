# tests/conftest.py
"""Shared test fixtures.

Doubles for the external collaborators live in tests/fakes.py. Fixtures here
wire them to one CallLog per test so ordering can be asserted across the
gateway, the coordinator and the engine.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path

import pytest
from hypothesis import Phase, Verbosity, settings

from matflow.core.logging import configure_logging
from matflow.core.store import TableGateway
from matflow.engine import PipelineBuilder
from tests.fakes import CallLog, FakeCoordinator, FakeEngine, FakeGateway

settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)
settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


@pytest.fixture(autouse=True)
def _stdlib_logging() -> None:
    """Route structlog through stdlib logging so caplog sees every event."""
    configure_logging(level="DEBUG")


@pytest.fixture
def calls() -> CallLog:
    return CallLog()


@pytest.fixture
def gateway(calls: CallLog) -> FakeGateway:
    return FakeGateway(calls)


@pytest.fixture
def coordinator(calls: CallLog) -> FakeCoordinator:
    return FakeCoordinator(calls, {"matflow.coordinator.provider": "fake"})


@pytest.fixture
def engine(calls: CallLog) -> FakeEngine:
    return FakeEngine(calls)


@pytest.fixture
def builder(gateway: FakeGateway, coordinator: FakeCoordinator, engine: FakeEngine) -> PipelineBuilder:
    """Builder for Scenario A: default database 'test', query without a key."""
    return (
        PipelineBuilder()
        .set_connection(gateway)
        .set_coordinator(coordinator)
        .set_stream_engine(engine)
        .set_query("select w.id as id, w.name as name, sum(h.amount) as richness from wallet w join holding h group by 1, 2")
        .set_target_table("richness")
    )


@pytest.fixture
def sqlite_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'store.db'}"


@pytest.fixture
def sqlite_gateway(sqlite_url: str) -> Iterator[TableGateway]:
    gateway = TableGateway.connect(sqlite_url)
    yield gateway
    gateway.close()
