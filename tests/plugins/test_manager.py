# tests/plugins/test_manager.py
"""Tests for engine and coordinator discovery."""

from collections.abc import Mapping

import pytest

from matflow.contracts import ConfigError
from matflow.plugins import PluginManager, get_plugin_manager, hookimpl
from matflow.plugins.coordinators import LocalCoordinator
from matflow.plugins.engines import RefreshEngine


class RemoteCoordinator:
    name = "remote"

    def __init__(self, options: Mapping[str, str]) -> None:
        self._options = dict(options)

    def options(self) -> Mapping[str, str]:
        return self._options

    def start(self) -> None:
        pass

    def close(self) -> None:
        pass


class RemotePlugin:
    @hookimpl
    def matflow_get_coordinators(self) -> list[type[RemoteCoordinator]]:
        return [RemoteCoordinator]


class DuplicateLocalPlugin:
    @hookimpl
    def matflow_get_coordinators(self) -> list[type[LocalCoordinator]]:
        return [LocalCoordinator]


@pytest.fixture
def manager() -> PluginManager:
    manager = PluginManager()
    manager.register_builtin_plugins()
    return manager


class TestBuiltins:
    def test_builtin_names(self, manager: PluginManager) -> None:
        assert manager.get_engine_names() == ["refresh"]
        assert manager.get_coordinator_names() == ["local"]

    def test_create_engine(self, manager: PluginManager) -> None:
        assert isinstance(manager.create_engine("refresh"), RefreshEngine)

    def test_unknown_engine(self, manager: PluginManager) -> None:
        with pytest.raises(ConfigError, match="Unknown stream engine 'flink'"):
            manager.create_engine("flink")

    def test_default_provider_is_local(self, manager: PluginManager) -> None:
        coordinator = manager.create_coordinator({"matflow.coordinator.host": "jobmanager"})

        assert isinstance(coordinator, LocalCoordinator)
        assert coordinator.options()["matflow.coordinator.host"] == "jobmanager"

    def test_unknown_provider(self, manager: PluginManager) -> None:
        with pytest.raises(ConfigError, match="Unknown coordinator provider 'zk'"):
            manager.create_coordinator({"matflow.coordinator.provider": "zk"})

    def test_default_manager_is_shared(self) -> None:
        assert get_plugin_manager() is get_plugin_manager()


class TestThirdPartyPlugins:
    def test_registered_provider_selected_by_option(self, manager: PluginManager) -> None:
        manager.register(RemotePlugin())

        coordinator = manager.create_coordinator({"matflow.coordinator.provider": "remote", "token": "x"})

        assert isinstance(coordinator, RemoteCoordinator)
        assert coordinator.options()["token"] == "x"
        assert manager.get_coordinator_names() == ["local", "remote"]

    def test_duplicate_name_rejected(self, manager: PluginManager) -> None:
        with pytest.raises(ValueError, match="Duplicate coordinator plugin name 'local'"):
            manager.register(DuplicateLocalPlugin())
