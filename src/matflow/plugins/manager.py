# src/matflow/plugins/manager.py
"""Plugin manager for engine and coordinator discovery.

Uses pluggy for hook-based registration.
"""

from collections.abc import Mapping

import pluggy
import structlog

from matflow.contracts import (
    DEFAULT_PROVIDER,
    PROVIDER_OPTION_KEY,
    ConfigError,
    CoordinatorFactory,
    CoordinatorProtocol,
    StreamEngineProtocol,
)
from matflow.plugins.hookspecs import PROJECT_NAME, MatflowCoordinatorSpec, MatflowEngineSpec

logger = structlog.get_logger(__name__)


class PluginManager:
    """Manages engine/coordinator discovery, registration and lookup.

    Usage:
        manager = PluginManager()
        manager.register_builtin_plugins()

        engine = manager.create_engine("refresh")
        coordinator = manager.create_coordinator({"matflow.coordinator.provider": "local"})
    """

    def __init__(self) -> None:
        self._pm = pluggy.PluginManager(PROJECT_NAME)
        self._pm.add_hookspecs(MatflowEngineSpec)
        self._pm.add_hookspecs(MatflowCoordinatorSpec)

        self._engines: dict[str, type[StreamEngineProtocol]] = {}
        self._coordinators: dict[str, CoordinatorFactory] = {}

    def register_builtin_plugins(self) -> None:
        """Register the built-in engine and coordinator plugins.

        Call once at startup. Duplicate registration is rejected by pluggy.
        """
        from matflow.plugins.coordinators import local
        from matflow.plugins.engines import refresh

        self.register(local)
        self.register(refresh)

    def load_entrypoint_plugins(self) -> int:
        """Load third-party plugins from the ``matflow`` entry point group."""
        count = self._pm.load_setuptools_entrypoints(PROJECT_NAME)
        if count:
            self._refresh_cache()
        return count

    def register(self, plugin: object) -> None:
        """Register a plugin object or module implementing the hooks.

        Raises:
            ValueError: If a plugin name is already registered by another plugin.
        """
        self._pm.register(plugin)
        self._refresh_cache()

    def _refresh_cache(self) -> None:
        engines: dict[str, type[StreamEngineProtocol]] = {}
        for batch in self._pm.hook.matflow_get_engines():
            for engine_cls in batch:
                _check_duplicate("engine", engine_cls.name, engines)
                engines[engine_cls.name] = engine_cls
        coordinators: dict[str, CoordinatorFactory] = {}
        for batch in self._pm.hook.matflow_get_coordinators():
            for factory in batch:
                _check_duplicate("coordinator", factory.name, coordinators)
                coordinators[factory.name] = factory
        self._engines = engines
        self._coordinators = coordinators

    def get_engine_names(self) -> list[str]:
        return sorted(self._engines)

    def get_coordinator_names(self) -> list[str]:
        return sorted(self._coordinators)

    def create_engine(self, name: str) -> StreamEngineProtocol:
        """Instantiate a registered stream engine.

        Raises:
            ConfigError: If no engine is registered under ``name``.
        """
        try:
            engine_cls = self._engines[name]
        except KeyError:
            raise ConfigError(f"Unknown stream engine {name!r}. Available: {self.get_engine_names()}") from None
        return engine_cls()

    def create_coordinator(self, options: Mapping[str, str]) -> CoordinatorProtocol:
        """Construct the coordinator selected by ``options``.

        The provider is read from ``matflow.coordinator.provider`` and
        defaults to the local coordinator.

        Raises:
            ConfigError: If the selected provider is not registered.
        """
        provider = options.get(PROVIDER_OPTION_KEY, DEFAULT_PROVIDER)
        try:
            factory = self._coordinators[provider]
        except KeyError:
            raise ConfigError(
                f"Unknown coordinator provider {provider!r}. Available: {self.get_coordinator_names()}"
            ) from None
        logger.debug("Creating coordinator", provider=provider, options=dict(options))
        return factory(dict(options))


def _check_duplicate(kind: str, name: str, registered: Mapping[str, object]) -> None:
    if name in registered:
        raise ValueError(f"Duplicate {kind} plugin name {name!r}")


_default_manager: PluginManager | None = None


def get_plugin_manager() -> PluginManager:
    """Process-wide manager with built-in and entry point plugins (singleton)."""
    global _default_manager

    if _default_manager is None:
        manager = PluginManager()
        manager.register_builtin_plugins()
        manager.load_entrypoint_plugins()
        _default_manager = manager
    return _default_manager
