# tests/test_public_api.py
"""Tests for public API surface."""

from pathlib import Path

import pytest

import courierlink


def test_version_is_set():
    assert courierlink.__version__ == "0.1.0"


def test_py_typed_marker_exists():
    """PEP 561 py.typed marker file exists."""
    marker = (
        Path(__file__).resolve().parents[1]
        / "src"
        / "courierlink"
        / "py.typed"
    )
    assert marker.exists()


def test_all_exports_are_importable():
    """Every name in __all__ is importable."""
    for name in courierlink.__all__:
        attr = getattr(courierlink, name)
        assert attr is not None, f"{name} resolved to None"


def test_lazy_import_config():
    cls = courierlink.CourierLinkConfig
    assert cls.__name__ == "CourierLinkConfig"


def test_lazy_import_factories():
    assert callable(courierlink.create_shipping_app)
    assert callable(courierlink.create_shipping_router)
    assert callable(courierlink.compare_rates)


def test_lazy_import_services():
    assert courierlink.ShipmentLedger.__name__ == "ShipmentLedger"
    assert courierlink.TrackingIngestor.__name__ == "TrackingIngestor"
    assert courierlink.TrackingLookup.__name__ == "TrackingLookup"
    assert courierlink.CarrierRegistry.__name__ == "CarrierRegistry"


def test_lazy_import_exceptions():
    assert issubclass(
        courierlink.ShipmentNotFoundError, courierlink.CourierLinkError
    )
    assert issubclass(
        courierlink.ConfigurationError, courierlink.CourierLinkError
    )


def test_status_enum_exported():
    assert courierlink.ShipmentStatus("delivered") == "delivered"


def test_getattr_raises_for_unknown():
    with pytest.raises(AttributeError, match="no_such_attribute"):
        courierlink.no_such_attribute  # noqa: B018
