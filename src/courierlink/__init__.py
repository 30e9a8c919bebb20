# src/courierlink/__init__.py
"""Multi-carrier shipment booking and tracking for Litestar services."""

from typing import TYPE_CHECKING

__version__ = "0.1.0"

__all__ = [
    "CarrierConfig",
    "CarrierRegistry",
    "ConfigurationError",
    "CourierLinkConfig",
    "CourierLinkError",
    "ShipmentLedger",
    "ShipmentNotFoundError",
    "ShipmentStatus",
    "TrackingIngestor",
    "TrackingLookup",
    "WebhookRetryStore",
    "__version__",
    "compare_rates",
    "create_shipping_app",
    "create_shipping_router",
]

if TYPE_CHECKING:
    from courierlink.carrier_config import CarrierConfig
    from courierlink.config import CourierLinkConfig
    from courierlink.enums import ShipmentStatus
    from courierlink.exceptions import (
        ConfigurationError,
        CourierLinkError,
        ShipmentNotFoundError,
    )
    from courierlink.ingestion import TrackingIngestor
    from courierlink.ledger import ShipmentLedger
    from courierlink.lookup import TrackingLookup
    from courierlink.plugin import create_shipping_app, create_shipping_router
    from courierlink.protocols import WebhookRetryStore
    from courierlink.rates import compare_rates
    from courierlink.registry import CarrierRegistry


def __getattr__(name: str):
    # Lazy imports to avoid loading all submodules on package import.
    if name == "CourierLinkConfig":
        from courierlink.config import CourierLinkConfig

        return CourierLinkConfig
    if name == "CarrierConfig":
        from courierlink.carrier_config import CarrierConfig

        return CarrierConfig
    if name == "ShipmentStatus":
        from courierlink.enums import ShipmentStatus

        return ShipmentStatus
    if name in ("create_shipping_app", "create_shipping_router"):
        from courierlink import plugin

        return getattr(plugin, name)
    if name == "CarrierRegistry":
        from courierlink.registry import CarrierRegistry

        return CarrierRegistry
    if name == "ShipmentLedger":
        from courierlink.ledger import ShipmentLedger

        return ShipmentLedger
    if name == "TrackingIngestor":
        from courierlink.ingestion import TrackingIngestor

        return TrackingIngestor
    if name == "TrackingLookup":
        from courierlink.lookup import TrackingLookup

        return TrackingLookup
    if name == "compare_rates":
        from courierlink.rates import compare_rates

        return compare_rates
    if name in (
        "ConfigurationError",
        "CourierLinkError",
        "ShipmentNotFoundError",
    ):
        from courierlink import exceptions

        return getattr(exceptions, name)
    if name == "WebhookRetryStore":
        from courierlink import protocols

        return getattr(protocols, name)
    raise AttributeError(f"module 'courierlink' has no attribute {name!r}")
