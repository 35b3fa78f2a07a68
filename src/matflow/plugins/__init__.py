# src/matflow/plugins/__init__.py
"""Plugin system: stream engines and consistency coordinators via pluggy.

- Hookspecs: pluggy hook definitions (matflow_get_engines, matflow_get_coordinators)
- Manager: discovery, registration and lookup by name
- Built-ins: the ``refresh`` engine and the ``local`` coordinator
"""

from matflow.plugins.hookspecs import hookimpl
from matflow.plugins.manager import PluginManager, get_plugin_manager

__all__ = ["PluginManager", "get_plugin_manager", "hookimpl"]
