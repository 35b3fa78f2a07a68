# tests/engine/test_builder.py
"""Tests for PipelineBuilder validation, defaulting and resource ownership."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import pytest

from matflow.contracts import (
    CATALOG_NAME,
    HOST_OPTION_KEY,
    PROVIDER_OPTION_KEY,
    ConfigError,
    QueryError,
    ResolvedSchema,
    TablePath,
)
from matflow.core.config import ExecutionSettings, PipelineSettings
from matflow.core.store import TableGateway
from matflow.engine import PipelineBuilder
from matflow.plugins import PluginManager, hookimpl
from tests.fakes import CallLog, FakeCoordinator, FakeEngine, FakeGateway


class TestRequiredInputs:
    def test_no_connection_touches_nothing(self, calls: CallLog, coordinator: FakeCoordinator, engine: FakeEngine) -> None:
        builder = (
            PipelineBuilder()
            .set_coordinator(coordinator)
            .set_stream_engine(engine)
            .set_query("select 1")
            .set_target_table("t")
        )

        with pytest.raises(ConfigError, match="Store connection must be specified"):
            builder.build()

        assert calls == []

    def test_missing_query(self, calls: CallLog, gateway: FakeGateway) -> None:
        with pytest.raises(ConfigError, match="Query must be specified"):
            PipelineBuilder().set_connection(gateway).set_target_table("t").build()

        assert calls == []

    def test_missing_target_table(self, calls: CallLog, gateway: FakeGateway) -> None:
        with pytest.raises(ConfigError, match="Target table must be specified"):
            PipelineBuilder().set_connection(gateway).set_query("select 1").build()

        assert calls == []

    def test_target_table_path_arity(self) -> None:
        with pytest.raises(ConfigError, match="got 3 parts"):
            PipelineBuilder().set_target_table("a", "b", "c")


class TestScenarioA:
    def test_defaults_resolved_from_connection(self, builder: PipelineBuilder, engine: FakeEngine) -> None:
        pipeline = builder.build()

        assert pipeline.default_database == "test"
        assert pipeline.target.path == TablePath("test", "richness")
        assert pipeline.target.column_names == ("id", "name", "richness")
        assert pipeline.target.primary_keys == ("id",)
        assert pipeline.drop_old_table is False
        assert pipeline.force_new_table is True

    def test_catalog_registered_before_planning(self, builder: PipelineBuilder, calls: CallLog, engine: FakeEngine) -> None:
        builder.build()

        assert calls.index("register_catalog") < calls.index("use_catalog") < calls.index("sql_query")
        assert engine.environment is not None
        catalog = engine.environment.catalogs[CATALOG_NAME]
        assert catalog.default_database == "test"
        assert catalog.store.endpoint == "pd-0:2379"
        assert catalog.coordinator_options == {PROVIDER_OPTION_KEY: "fake"}

    def test_no_run_side_effects(self, builder: PipelineBuilder, calls: CallLog) -> None:
        builder.build()

        assert "create_table" not in calls
        assert "coordinator.start" not in calls
        assert "connection.close" not in calls


class TestDatabases:
    def test_explicit_matching_default(self, builder: PipelineBuilder) -> None:
        assert builder.set_default_database("test").build().default_database == "test"

    def test_mismatched_default_database(self, builder: PipelineBuilder, calls: CallLog) -> None:
        with pytest.raises(ConfigError, match="Default database mismatched"):
            builder.set_default_database("other").build()

        assert "sql_query" not in calls

    def test_explicit_default_when_connection_has_none(self, calls: CallLog, builder: PipelineBuilder) -> None:
        builder.set_connection(FakeGateway(calls, default_database=None)).set_default_database("analytics")

        assert builder.build().target.path == TablePath("analytics", "richness")

    def test_no_default_database_anywhere(self, calls: CallLog, builder: PipelineBuilder) -> None:
        builder.set_connection(FakeGateway(calls, default_database=None))

        with pytest.raises(ConfigError, match="Default database must be specified"):
            builder.build()

    def test_qualified_target_table(self, builder: PipelineBuilder) -> None:
        pipeline = builder.set_target_table("reports", "richness").build()

        assert pipeline.target.path == TablePath("reports", "richness")
        assert pipeline.default_database == "test"

    def test_dotted_target_table(self, builder: PipelineBuilder) -> None:
        pipeline = builder.set_target_table("reports.richness").build()

        assert pipeline.target.path == TablePath("reports", "richness")

    def test_single_name_replaces_earlier_database(self, builder: PipelineBuilder) -> None:
        builder.set_target_table("reports", "old").set_target_table("richness")

        assert builder.build().target.path == TablePath("test", "richness")

    @pytest.mark.parametrize("raw", ["reports.", "a.b.c"])
    def test_invalid_dotted_target(self, raw: str, builder: PipelineBuilder, calls: CallLog) -> None:
        with pytest.raises(ConfigError, match="Invalid table path"):
            builder.set_target_table(raw).build()

        assert "sql_query" not in calls
        assert "connection.close" not in calls


class TestScenarioC:
    def test_column_override_length_mismatch(self, builder: PipelineBuilder, calls: CallLog) -> None:
        with pytest.raises(ConfigError, match="Mismatched size of columnNames"):
            builder.set_column_names("a", "b").build()

        assert "create_table" not in calls
        assert "drop_table" not in calls
        assert "coordinator.start" not in calls

    def test_column_override_of_matching_length(self, builder: PipelineBuilder) -> None:
        pipeline = builder.set_column_names(["user_id", "user_name", "total"]).build()

        assert pipeline.target.column_names == ("user_id", "user_name", "total")
        assert pipeline.target.primary_keys == ("user_id",)


class TestPrimaryKeys:
    def test_override(self, builder: PipelineBuilder) -> None:
        assert builder.set_primary_keys("id", "name").build().target.primary_keys == ("id", "name")

    def test_unknown_key(self, builder: PipelineBuilder) -> None:
        with pytest.raises(ConfigError, match="PrimaryKeys must be contained by columnNames"):
            builder.set_primary_keys("email").build()

    def test_empty_key(self, builder: PipelineBuilder) -> None:
        with pytest.raises(ConfigError, match="PrimaryKeys can't be empty"):
            builder.set_primary_keys([]).build()

    def test_query_declared_key(self, calls: CallLog, builder: PipelineBuilder) -> None:
        schema = ResolvedSchema.of(("id", "BIGINT"), ("name", "STRING"), primary_key=("name",))
        builder.set_stream_engine(FakeEngine(calls, schema))

        assert builder.build().target.primary_keys == ("name",)


class TestEnvironment:
    def test_parallelism_and_checkpointing(self, builder: PipelineBuilder, engine: FakeEngine) -> None:
        builder.set_parallelism(4).set_checkpoint_interval(2000).build()

        assert engine.environment is not None
        settings = engine.environment.settings
        assert settings.parallelism == 4
        assert settings.checkpoint.interval_ms == 2000
        assert settings.checkpoint.mode == "exactly_once"
        assert settings.checkpoint.min_pause_between_ms == 500
        assert settings.checkpoint.max_concurrent == 1

    def test_invalid_parallelism(self, builder: PipelineBuilder) -> None:
        with pytest.raises(ConfigError, match="Invalid execution environment"):
            builder.set_parallelism(0).build()

    def test_batch_mode_rejected(self, builder: PipelineBuilder, calls: CallLog) -> None:
        with pytest.raises(ConfigError, match="streaming mode"):
            builder.set_execution_settings(ExecutionSettings(mode="batch")).build()

        assert "sql_query" not in calls

    def test_unknown_engine_name(self, calls: CallLog, gateway: FakeGateway) -> None:
        builder = (
            PipelineBuilder(plugin_manager=PluginManager())
            .set_connection(gateway)
            .set_query("select 1")
            .set_target_table("t")
            .set_execution_settings(ExecutionSettings(engine="flink"))
        )

        with pytest.raises(ConfigError, match="Unknown stream engine"):
            builder.build()


class RecordingCoordinatorFactory:
    """Coordinator factory that keeps every coordinator it creates."""

    name = "fake"

    def __init__(self, calls: CallLog) -> None:
        self.calls = calls
        self.created: list[FakeCoordinator] = []

    def __call__(self, options: Mapping[str, str]) -> FakeCoordinator:
        coordinator = FakeCoordinator(self.calls, options)
        self.created.append(coordinator)
        return coordinator


class TestCreatedCoordinator:
    @pytest.fixture
    def factory(self, calls: CallLog) -> RecordingCoordinatorFactory:
        return RecordingCoordinatorFactory(calls)

    @pytest.fixture
    def plugin_manager(self, factory: RecordingCoordinatorFactory) -> PluginManager:
        class FakeCoordinatorPlugin:
            @hookimpl
            def matflow_get_coordinators(self) -> list[RecordingCoordinatorFactory]:
                return [factory]

        manager = PluginManager()
        manager.register(FakeCoordinatorPlugin())
        return manager

    @pytest.fixture
    def created_builder(self, plugin_manager: PluginManager, gateway: FakeGateway, engine: FakeEngine) -> PipelineBuilder:
        return (
            PipelineBuilder(plugin_manager=plugin_manager)
            .set_connection(gateway)
            .set_stream_engine(engine)
            .set_coordinator_options({PROVIDER_OPTION_KEY: "fake"})
            .set_query("select 1")
            .set_target_table("richness")
        )

    def test_remote_host_forwarded(self, created_builder: PipelineBuilder, factory: RecordingCoordinatorFactory) -> None:
        pipeline = created_builder.set_execution_settings(ExecutionSettings(remote_host="jobmanager")).build()

        assert pipeline.coordinator is factory.created[0]
        assert pipeline.coordinator.options() == {HOST_OPTION_KEY: "jobmanager", PROVIDER_OPTION_KEY: "fake"}

    def test_no_host_option_when_local(self, created_builder: PipelineBuilder) -> None:
        pipeline = created_builder.build()

        assert HOST_OPTION_KEY not in pipeline.coordinator.options()

    def test_created_coordinator_closed_on_failure(
        self,
        calls: CallLog,
        created_builder: PipelineBuilder,
        factory: RecordingCoordinatorFactory,
    ) -> None:
        created_builder.set_stream_engine(FakeEngine(calls, query_error=QueryError("Cannot plan query: no such table")))

        with pytest.raises(QueryError):
            created_builder.build()

        assert len(factory.created) == 1
        assert calls.count("coordinator.close") == 1
        # The caller supplied the connection, so it stays open
        assert "connection.close" not in calls


class TestOwnership:
    def test_supplied_coordinator_not_closed_on_failure(self, builder: PipelineBuilder, calls: CallLog) -> None:
        with pytest.raises(ConfigError):
            builder.set_column_names("a").build()

        assert "coordinator.close" not in calls
        assert "connection.close" not in calls

    def test_url_connection_closed_on_failure(
        self,
        sqlite_url: str,
        coordinator: FakeCoordinator,
        calls: CallLog,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        opened: list[TableGateway] = []
        connect = TableGateway.connect

        def recording_connect(url: str, **connect_args: Any) -> TableGateway:
            gateway = connect(url, **connect_args)
            opened.append(gateway)
            return gateway

        monkeypatch.setattr(TableGateway, "connect", recording_connect)
        builder = (
            PipelineBuilder()
            .set_store_url(sqlite_url)
            .set_coordinator(coordinator)
            .set_stream_engine(FakeEngine(calls, query_error=QueryError("Cannot plan query")))
            .set_query("select 1")
            .set_target_table("t")
        )

        with pytest.raises(QueryError):
            builder.build()

        assert len(opened) == 1
        assert opened[0].closed
        assert "coordinator.close" not in calls

    def test_created_environment_closed_on_failure(self, builder: PipelineBuilder, calls: CallLog) -> None:
        builder.set_stream_engine(FakeEngine(calls, query_error=QueryError("Cannot plan query"), closable=True))

        with pytest.raises(QueryError):
            builder.build()

        assert calls.count("environment.close") == 1
        assert "coordinator.close" not in calls

    def test_environment_closed_when_not_streaming(self, builder: PipelineBuilder, calls: CallLog) -> None:
        builder.set_stream_engine(FakeEngine(calls, closable=True)).set_execution_settings(ExecutionSettings(mode="batch"))

        with pytest.raises(ConfigError, match="streaming mode"):
            builder.build()

        assert calls[-1] == "environment.close"

    def test_builder_is_single_use(self, builder: PipelineBuilder) -> None:
        builder.build()

        with pytest.raises(ConfigError, match="already built"):
            builder.set_parallelism(2)
        with pytest.raises(ConfigError, match="already built"):
            builder.build()

    def test_failed_build_can_be_corrected(self, builder: PipelineBuilder) -> None:
        with pytest.raises(ConfigError):
            builder.set_primary_keys("email").build()

        assert builder.set_primary_keys("id").build().target.primary_keys == ("id",)


class TestFromSettings:
    def test_settings_populate_builder(self, sqlite_url: str, coordinator: FakeCoordinator, engine: FakeEngine) -> None:
        settings = PipelineSettings(
            store={"url": sqlite_url},
            query="select 1 as id, 'a' as name, 2 as richness",
            target={"table": "richness"},
            column_names=["user_id", "user_name", "total"],
            primary_keys=["user_id", "user_name"],
            drop_old_table=True,
            force_new_table=False,
            validate_existing_table=True,
        )

        builder = PipelineBuilder.from_settings(settings).set_coordinator(coordinator).set_stream_engine(engine)
        with builder.build() as pipeline:
            assert pipeline.default_database == "main"
            assert pipeline.target.column_names == ("user_id", "user_name", "total")
            assert pipeline.target.primary_keys == ("user_id", "user_name")
            assert pipeline.drop_old_table is True
            assert pipeline.force_new_table is False
            assert pipeline.validate_existing_table is True
        assert pipeline.gateway.closed
