"""Built-in consistency coordinators."""

from matflow.plugins.coordinators.local import LocalCoordinator

__all__ = ["LocalCoordinator"]
