# src/matflow/plugins/hookspecs.py
"""pluggy hook specifications for matflow plugins.

Stream engines and consistency coordinators register themselves through
these hooks. Third-party packages expose them with a ``matflow`` entry
point group; built-ins are registered by the plugin manager directly.

Usage (implementing a plugin):
    from matflow.plugins.hookspecs import hookimpl

    class MyEnginePlugin:
        @hookimpl  # NOT @hookspec - that's for defining specs
        def matflow_get_engines(self):
            return [MyEngine]
"""

from typing import TYPE_CHECKING

import pluggy

if TYPE_CHECKING:
    from matflow.contracts import CoordinatorFactory, StreamEngineProtocol

# Project name for pluggy (also the setuptools entry point group)
PROJECT_NAME = "matflow"

hookspec = pluggy.HookspecMarker(PROJECT_NAME)
hookimpl = pluggy.HookimplMarker(PROJECT_NAME)


class MatflowEngineSpec:
    """Hook specifications for stream engine plugins."""

    @hookspec
    def matflow_get_engines(self) -> list[type["StreamEngineProtocol"]]:  # type: ignore[empty-body]
        """Return stream engine classes (instantiated without arguments)."""


class MatflowCoordinatorSpec:
    """Hook specifications for coordinator plugins."""

    @hookspec
    def matflow_get_coordinators(self) -> list["CoordinatorFactory"]:  # type: ignore[empty-body]
        """Return coordinator factories (usually the coordinator classes)."""
