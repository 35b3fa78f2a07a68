# tests/plugins/test_local_coordinator.py
"""Tests for the in-process coordinator."""

import pytest

from matflow.contracts import HOST_OPTION_KEY, PROVIDER_OPTION_KEY, CoordinatorError, CoordinatorProtocol
from matflow.plugins.coordinators.local import CoordinatorState, LocalCoordinator


class TestLocalCoordinator:
    def test_satisfies_protocol(self) -> None:
        assert isinstance(LocalCoordinator({}), CoordinatorProtocol)

    def test_default_options(self) -> None:
        options = LocalCoordinator({}).options()

        assert options == {PROVIDER_OPTION_KEY: "local", HOST_OPTION_KEY: "localhost"}

    def test_options_are_read_only(self) -> None:
        options = LocalCoordinator({"extra": "1"}).options()

        with pytest.raises(TypeError):
            options["extra"] = "2"  # type: ignore[index]

    def test_lifecycle(self) -> None:
        coordinator = LocalCoordinator({})
        assert coordinator.state is CoordinatorState.CREATED

        coordinator.start()
        assert coordinator.state is CoordinatorState.STARTED

        coordinator.close()
        coordinator.close()
        assert coordinator.state is CoordinatorState.CLOSED

    def test_start_after_close_rejected(self) -> None:
        coordinator = LocalCoordinator({})
        coordinator.close()

        with pytest.raises(CoordinatorError, match="state closed"):
            coordinator.start()

    def test_double_start_rejected(self) -> None:
        coordinator = LocalCoordinator({})
        coordinator.start()

        with pytest.raises(CoordinatorError):
            coordinator.start()
