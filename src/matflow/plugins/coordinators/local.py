# src/matflow/plugins/coordinators/local.py
"""In-process consistency coordinator.

Used when the streaming job and the store are reached from a single
process, e.g. with the refresh engine. It tracks its own lifecycle and
exposes its options; there is no remote protocol to speak.

Lifecycle: created -> started -> closed. Closing is idempotent; starting a
closed or already started coordinator is a CoordinatorError.
"""

from collections.abc import Mapping
from enum import StrEnum
from types import MappingProxyType

import structlog

from matflow.contracts import HOST_OPTION_KEY, PROVIDER_OPTION_KEY, CoordinatorError
from matflow.plugins.hookspecs import hookimpl

logger = structlog.get_logger(__name__)


class CoordinatorState(StrEnum):
    CREATED = "created"
    STARTED = "started"
    CLOSED = "closed"


class LocalCoordinator:
    """Coordinator that lives inside the orchestrating process."""

    name = "local"

    def __init__(self, options: Mapping[str, str]) -> None:
        resolved = {PROVIDER_OPTION_KEY: self.name, HOST_OPTION_KEY: "localhost", **options}
        self._options = MappingProxyType(resolved)
        self._state = CoordinatorState.CREATED

    @property
    def state(self) -> CoordinatorState:
        return self._state

    def options(self) -> Mapping[str, str]:
        return self._options

    def start(self) -> None:
        if self._state is not CoordinatorState.CREATED:
            raise CoordinatorError(f"Cannot start coordinator in state {self._state}")
        self._state = CoordinatorState.STARTED
        logger.debug("Local coordinator started", host=self._options[HOST_OPTION_KEY])

    def close(self) -> None:
        if self._state is CoordinatorState.CLOSED:
            return
        self._state = CoordinatorState.CLOSED
        logger.debug("Local coordinator closed")


@hookimpl
def matflow_get_coordinators() -> list[type[LocalCoordinator]]:
    return [LocalCoordinator]
