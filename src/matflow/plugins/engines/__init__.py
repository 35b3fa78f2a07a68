"""Built-in stream engines."""

from matflow.plugins.engines.refresh import RefreshEngine

__all__ = ["RefreshEngine"]
