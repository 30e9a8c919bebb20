"""Dependency injection tests."""

from __future__ import annotations

from litestar.di import Provide

import courierlink.dependencies as deps_mod
from courierlink.dependencies import route_dependencies


class TestDependenciesModule:
    def test_module_has_docstring(self) -> None:
        assert deps_mod.__doc__ is not None

    def test_every_service_has_a_provider(self, test_app) -> None:
        services = test_app.state.courierlink
        dependencies = route_dependencies(services)

        assert set(dependencies) == {
            "config",
            "carrier_store",
            "registry",
            "ledger",
            "ingestor",
            "lookup",
            "retry_store",
        }
        for provider in dependencies.values():
            assert isinstance(provider, Provide)

    def test_services_share_one_ledger(self, test_app, retry_store) -> None:
        services = test_app.state.courierlink
        assert services.retry_store is retry_store
        assert services.lookup.ingestor is services.ingestor
        assert services.ingestor.ledger is services.ledger
