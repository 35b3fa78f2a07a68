# src/matflow/contracts/coordinator.py
"""Consistency coordinator contracts.

The coordinator is an external service that keeps the store's transactional
state and the pipeline's checkpointed output consistent. Its protocol is
opaque to matflow; the orchestrator only needs start/close/options.

Lifecycle (owned exclusively by one Pipeline):
1. factory.create(options) - construct, no side effects
2. start()                 - after the target table exists, before the job
3. close()                 - always, on every exit path
"""

from collections.abc import Mapping
from typing import Protocol, runtime_checkable

# Selects the coordinator factory by name.
PROVIDER_OPTION_KEY = "matflow.coordinator.provider"
# Reachable host for the coordinator when the job runs on a remote cluster.
HOST_OPTION_KEY = "matflow.coordinator.host"

DEFAULT_PROVIDER = "local"


@runtime_checkable
class CoordinatorProtocol(Protocol):
    """Handle on a running (or startable) coordinator."""

    def start(self) -> None:
        """Start the coordinator.

        Raises:
            CoordinatorError: If the coordinator cannot be started.
        """
        ...

    def close(self) -> None:
        """Stop the coordinator and release its resources."""
        ...

    def options(self) -> Mapping[str, str]:
        """Options the coordinator was created with (for diagnostics)."""
        ...


class CoordinatorFactory(Protocol):
    """Constructs coordinators from options. Registered through the plugin manager.

    Coordinator classes satisfy this directly: a ``name`` class attribute
    and an ``__init__(options)``.
    """

    name: str

    def __call__(self, options: Mapping[str, str]) -> CoordinatorProtocol: ...
